from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Iterable, Mapping
from urllib.parse import quote

from app.core.config import WHATSAPP_COUNTRY_CODE
from app.schemas.entities import LineItem, to_money

TEMPLATES: dict[str, str] = {
    "order_out_for_delivery": (
        "Olá, {customer_name}! Seu pedido do {store_name} acabou de sair para entrega "
        "e logo chegará até você. Prepare o apetite! 🛵🔥"
    ),
    "coupon_gift": (
        "Olá {customer_name}, presente para você do {store_name}! 🍢\n\n"
        "Use o cupom *{code}* e ganhe {discount} OFF em seu próximo pedido! 🔥"
    ),
}

_NON_DIGITS = re.compile(r"\D")


def only_digits(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


def format_currency(value: Decimal | int | float | str | None) -> str:
    formatted = f"{to_money(value):,.2f}"
    return f"R$ {formatted}".replace(",", "X").replace(".", ",").replace("X", ".")


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    if template not in TEMPLATES:
        raise KeyError(f"Template inválido: {template}")
    return TEMPLATES[template].format(**variables)


def build_wa_link(phone: str | None, message: str, country_code: str | None = WHATSAPP_COUNTRY_CODE) -> str:
    """Link ``wa.me`` com texto pré-preenchido.

    Sem telefone, o link abre o seletor de contatos do WhatsApp.
    """
    digits = only_digits(phone)
    if digits and country_code and not digits.startswith(country_code):
        digits = f"{country_code}{digits}"
    return f"https://wa.me/{digits}?text={quote(message, safe='')}"


def dispatch_message(customer_name: str, store_name: str) -> str:
    return render_template(
        "order_out_for_delivery",
        {"customer_name": customer_name or "Cliente", "store_name": store_name},
    )


def coupon_gift_message(customer_name: str, store_name: str, code: str, discount: Decimal) -> str:
    return render_template(
        "coupon_gift",
        {
            "customer_name": customer_name or "Cliente",
            "store_name": store_name,
            "code": code,
            "discount": format_currency(discount),
        },
    )


def _items_block(items: Iterable[LineItem]) -> str:
    lines = []
    for item in items:
        line = f"{item.quantity}x {item.name} - {format_currency(item.line_total())}"
        if item.selected_sides:
            line += "\n    + Acomp: " + ", ".join(side.name for side in item.selected_sides)
        if item.doneness:
            line += f"\n    Ponto: {item.doneness}"
        if item.note:
            line += f" (Obs: {item.note})"
        lines.append(line)
    return "\n\n".join(lines)


def new_order_message(
    *,
    store_name: str,
    customer_name: str,
    customer_whatsapp: str,
    order_type: str,
    items: Iterable[LineItem],
    subtotal: Decimal,
    delivery_fee: Decimal,
    discount: Decimal,
    total: Decimal,
    payment_method: str,
    address: str = "",
    table_number: str | None = None,
) -> str:
    """Mensagem enviada pelo cliente à loja ao finalizar o pedido."""
    parts = [
        f"🔥 NOVO PEDIDO - {store_name.upper()}",
        "",
        f"Cliente: {customer_name}",
    ]
    if customer_whatsapp:
        parts.append(f"WhatsApp: {customer_whatsapp}")
    parts += ["", "ITENS DO PEDIDO:", _items_block(items), "", "RESUMO:", f"Subtotal: {format_currency(subtotal)}"]
    if delivery_fee > 0:
        parts.append(f"Taxa de Entrega: {format_currency(delivery_fee)}")
    if discount > 0:
        parts.append(f"Desconto: - {format_currency(discount)}")
    parts += [f"TOTAL: {format_currency(total)}", "", "ENTREGA/PAGAMENTO:"]
    if order_type == "delivery":
        parts.append(f"Endereço: {address}")
    else:
        parts.append(f"Mesa: {table_number or '-'}")
    parts.append(f"Forma de Pagamento: {payment_method or 'não informada'}")
    return "\n".join(parts)
