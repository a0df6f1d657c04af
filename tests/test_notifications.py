from urllib.parse import unquote

from order_desk.services.notifications import (
    render_template, whatsapp_link, order_placed_message, in_distribution_message, order_values,
)

TEMPLATES = {
    'orderPlacedMessageWholesale': "W {orderId} {totalEGP} {outstanding}",
    'orderPlacedMessageRetailWithDeposit': "D {totalEGP} {deposit} {outstanding}",
    'orderPlacedMessageRetailNoDeposit': "N {customerName} {pieces}",
    'inDistributionMessage': "Arrived {orderId} pay {outstandingAmount}",
}


def test_render_template_leaves_unknown_tokens():
    assert render_template("Hi {name}, {missing}", name="Mona") == "Hi Mona, {missing}"
    assert render_template(None) == ""


def test_whatsapp_link():
    link = whatsapp_link("+20 100-123", "Hello there & bye", country_prefix="")
    assert link.startswith("https://wa.me/20100123?text=")
    assert unquote(link.split("text=")[1]) == "Hello there & bye"
    assert whatsapp_link("", "Hi") is None
    assert whatsapp_link(None, "Hi") is None


def test_retail_messages_depend_on_deposit(make_order):
    no_deposit = make_order(gross_amount=1000, pieces=3)
    assert order_placed_message(no_deposit, TEMPLATES) == "N Mona Adel 3"

    with_deposit = make_order(gross_amount=1001, deposit_paid=7001)
    # 1001 × 14.5 = 14514.5 → 14515; deposit rounds to 7000; outstanding 7514 → 7515
    assert order_placed_message(with_deposit, TEMPLATES) == "D 14515 7000 7515"


def test_wholesale_message(make_order, wholesale_customer):
    order = make_order(customer=wholesale_customer, gross_amount=2000, deposit_paid=500)
    assert order_placed_message(order, TEMPLATES) == "W B-1 24500 24000"


def test_in_distribution_message(make_order):
    order = make_order(gross_amount=1000, deposit_paid=500)
    assert in_distribution_message(order, TEMPLATES) == "Arrived B-1 pay 14000.00"


def test_order_values_include_extra(make_order):
    order = make_order(gross_amount=1000, extra_amount=20)
    values = order_values(order)
    assert values['totalEGP'] == "14540"
    assert values['totalEGPPlusExtra'] == "14560"
