import os
from decimal import Decimal
from urllib.parse import unquote

import pytest

from app.services.bills import group_open_orders
from app.services.printing import (
    DEFAULT_PRINT_SETTINGS,
    _normalize_settings,
    auto_print_if_enabled,
    build_ticket_lines,
    generate_ticket_pdf,
    get_print_settings,
)
from app.services.whatsapp_templates import (
    build_wa_link,
    coupon_gift_message,
    dispatch_message,
    format_currency,
    only_digits,
    render_template,
)


def _grouped_bill(factories):
    first = factories.make_order(
        1,
        order_type="dine_in",
        table_number="5",
        observation="sem cebola",
        payment_method="pix",
        items=[factories.line("X-Burger", 1, selected_sides=[{"name": "Bacon", "price": "4.00"}], doneness="Ao ponto")],
        total="29.00",
    )
    second = factories.make_order(
        2,
        minutes=6,
        order_type="dine_in",
        table_number="5",
        items=[factories.line("Coca", 1, "7.00", note="gelada")],
        total="7.00",
    )
    return group_open_orders([first, second])[0]


def test_settings_are_normalized():
    assert _normalize_settings({"printerWidth": "58mm", "autoPrint": 1}) == {
        "printer_width": 58,
        "auto_print": True,
        "header_text": "",
        "footer_text": DEFAULT_PRINT_SETTINGS["footer_text"],
    }
    assert _normalize_settings({"printer_width": 72})["printer_width"] == 80
    assert get_print_settings(404) == DEFAULT_PRINT_SETTINGS


def test_ticket_lines_mark_additional_items(factories):
    bill = _grouped_bill(factories)

    lines = [text for text, _bold in build_ticket_lines(bill, "Burger House", _normalize_settings({}))]

    assert lines[0] == "BURGER HOUSE"
    assert "Conta agrupada: 2 pedidos" in lines
    assert "MESA 5" in lines
    assert "1x X-Burger" in lines
    assert "   + Bacon" in lines
    assert "   Ponto: Ao ponto" in lines
    assert "[+] 1x Coca" in lines
    assert "   Obs: gelada" in lines
    assert "SEM CEBOLA" in lines
    assert "Total: R$ 36,00" in lines
    assert "-" * 48 in lines


def test_narrow_printer_uses_short_separator(factories):
    lines = [text for text, _bold in build_ticket_lines(_grouped_bill(factories), "Loja", _normalize_settings({"printer_width": 58}))]

    assert "-" * 32 in lines
    assert "-" * 48 not in lines


def test_generate_ticket_pdf(factories):
    path = generate_ticket_pdf(_grouped_bill(factories), 77, "Burger House", {"printer_width": 58})

    assert os.path.exists(path)
    with open(path, "rb") as handle:
        assert handle.read(4) == b"%PDF"


def test_auto_print_disabled_by_default(factories):
    assert auto_print_if_enabled(_grouped_bill(factories), 405, "Burger House") is None


def test_currency_format():
    assert format_currency(Decimal("1234.5")) == "R$ 1.234,50"
    assert format_currency(None) == "R$ 0,00"


def test_wa_link_adds_country_code_once():
    assert build_wa_link("(11) 99999-0000", "Olá mundo") == "https://wa.me/5511999990000?text=Ol%C3%A1%20mundo"
    assert build_wa_link("5511999990000", "oi") == "https://wa.me/5511999990000?text=oi"
    assert build_wa_link("", "oi") == "https://wa.me/?text=oi"
    assert only_digits("+55 (11) 9") == "55119"


def test_message_templates():
    assert "Ana" in dispatch_message("Ana", "Burger House")
    assert "Burger House" in dispatch_message("", "Burger House")

    gift = coupon_gift_message("Ana", "Burger House", "VOLTA10", Decimal("10"))
    assert "*VOLTA10*" in gift
    assert "R$ 10,00 OFF" in gift
    assert "VOLTA10" in unquote(build_wa_link("11988887777", gift))

    with pytest.raises(KeyError):
        render_template("inexistente", {})
