"""
Initial mail templates for the shop, one per notification type.
"""

from __future__ import annotations

SHOP_SIGNATURE = """──────────────────────────
筋肉ショップ
Email: support@kinniku-shop.example.com
Tel: 03-1234-5678（平日 10:00〜18:00）
──────────────────────────"""

RULE = "━━━━━━━━━━━━━━━━━━━━━━━━━━━"

ORDER_VARIABLES = [
    "customer_name",
    "order_number",
    "order_date",
    "order_items",
    "subtotal",
    "tax",
    "shipping",
    "total",
    "shipping_address",
]

BANK_VARIABLES = ORDER_VARIABLES + [
    "bank_name",
    "branch_name",
    "account_type",
    "account_number",
    "account_holder",
    "payment_deadline",
]

_ORDER_SUMMARY = f"""{RULE}
■ ご注文情報
{RULE}
注文番号: {{{{order_number}}}}
注文日時: {{{{order_date}}}}

■ ご注文商品
{{{{order_items}}}}

{RULE}
■ お支払い金額
{RULE}
小計: ¥{{{{subtotal}}}}
消費税: ¥{{{{tax}}}}
送料: ¥{{{{shipping}}}}
──────────────────────────
合計: ¥{{{{total}}}}"""

_DELIVERY_ADDRESS = f"""{RULE}
■ お届け先
{RULE}
{{{{shipping_address}}}}

{RULE}"""

_GREETING_NEW = """{{customer_name}} 様

この度は筋肉ショップをご利用いただき、誠にありがとうございます。
以下の内容でご注文を承りました。"""

_GREETING_REPEAT = """{{customer_name}} 様

いつも筋肉ショップをご利用いただき、誠にありがとうございます。"""

_CLOSING = """ご不明な点がございましたら、お気軽にお問い合わせください。
今後とも筋肉ショップをよろしくお願いいたします。"""


DEFAULT_TEMPLATES = {
    "order_complete_credit": {
        "name": "注文完了メール（クレジットカード）",
        "description": "クレジットカード決済完了後に自動送信されます",
        "subject": "【筋肉ショップ】ご注文ありがとうございます（注文番号: {{order_number}}）",
        "body": f"""{_GREETING_NEW}

{_ORDER_SUMMARY}

お支払い方法: クレジットカード（決済完了）

{_DELIVERY_ADDRESS}

商品の発送準備が整いましたら、改めてご連絡いたします。
ご不明な点がございましたら、お気軽にお問い合わせください。

今後とも筋肉ショップをよろしくお願いいたします。

{SHOP_SIGNATURE}""",
        "variables": ORDER_VARIABLES,
    },
    "order_complete_bank": {
        "name": "注文完了メール（銀行振込）",
        "description": "銀行振込選択時に振込先情報と共に送信されます",
        "subject": (
            "【筋肉ショップ】ご注文ありがとうございます - お振込のお願い"
            "（注文番号: {{order_number}}）"
        ),
        "body": f"""{_GREETING_NEW}

{_ORDER_SUMMARY}

{RULE}
■ お振込先情報
{RULE}
金融機関: {{{{bank_name}}}}
支店名: {{{{branch_name}}}}
口座種別: {{{{account_type}}}}
口座番号: {{{{account_number}}}}
口座名義: {{{{account_holder}}}}

【お振込期限】{{{{payment_deadline}}}}

※ 振込手数料はお客様のご負担となります。
※ ご注文者名と振込名義が異なる場合は、事前にお問い合わせください。
※ お振込期限を過ぎた場合、ご注文がキャンセルとなる場合がございます。

{_DELIVERY_ADDRESS}

ご入金確認後、商品の発送準備を開始いたします。
ご不明な点がございましたら、お気軽にお問い合わせください。

今後とも筋肉ショップをよろしくお願いいたします。

{SHOP_SIGNATURE}""",
        "variables": BANK_VARIABLES,
    },
    "payment_confirmed": {
        "name": "振込確認メール",
        "description": "銀行振込の入金確認後に送信されます",
        "subject": "【筋肉ショップ】ご入金を確認いたしました（注文番号: {{order_number}}）",
        "body": f"""{_GREETING_REPEAT}

下記ご注文のご入金を確認いたしました。

{RULE}
■ ご入金情報
{RULE}
注文番号: {{{{order_number}}}}
入金確認日: {{{{payment_date}}}}
入金金額: ¥{{{{total}}}}

{RULE}

これより商品の発送準備を開始いたします。
発送予定日: {{{{estimated_shipping_date}}}}

商品の発送が完了しましたら、追跡番号と共に改めてご連絡いたします。

{_CLOSING}

{SHOP_SIGNATURE}""",
        "variables": [
            "customer_name",
            "order_number",
            "payment_date",
            "total",
            "estimated_shipping_date",
        ],
    },
    "shipping_complete": {
        "name": "発送完了メール",
        "description": "商品発送時に追跡番号と共に送信されます",
        "subject": "【筋肉ショップ】商品を発送いたしました（注文番号: {{order_number}}）",
        "body": f"""{_GREETING_REPEAT}

ご注文いただきました商品を発送いたしました。

{RULE}
■ 発送情報
{RULE}
注文番号: {{{{order_number}}}}
発送日: {{{{shipping_date}}}}
配送業者: {{{{carrier}}}}
追跡番号: {{{{tracking_number}}}}

■ 配送状況の確認
{{{{tracking_url}}}}

{_DELIVERY_ADDRESS}

お届けまで今しばらくお待ちください。
ご不在の場合は、不在票にてご連絡させていただきます。

商品到着後、万が一不具合等がございましたら、
7日以内にお問い合わせください。

{_CLOSING}

{SHOP_SIGNATURE}""",
        "variables": [
            "customer_name",
            "order_number",
            "shipping_date",
            "carrier",
            "tracking_number",
            "tracking_url",
            "shipping_address",
        ],
    },
}
