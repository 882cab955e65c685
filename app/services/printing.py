import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List

from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from app.core.config import PRINT_SETTINGS_DIR, TICKETS_DIR
from app.schemas.entities import Bill
from app.services.order_status import STATUS_LABELS
from app.services.whatsapp_templates import format_currency

logger = logging.getLogger(__name__)

PRINTER_WIDTHS = (58, 80)

DEFAULT_PRINT_SETTINGS: Dict[str, Any] = {
    "printer_width": 80,
    "auto_print": False,
    "header_text": "",
    "footer_text": "Obrigado pela preferência!",
}


# =====================================================
# Settings (por tenant) - arquivo JSON
# =====================================================

def _settings_dir() -> str:
    os.makedirs(PRINT_SETTINGS_DIR, exist_ok=True)
    return PRINT_SETTINGS_DIR


def _settings_path(tenant_id: int) -> str:
    return os.path.join(_settings_dir(), f"print_settings_tenant_{tenant_id}.json")


def _normalize_settings(data: Dict[str, Any]) -> Dict[str, Any]:
    width = data.get("printer_width", data.get("printerWidth", DEFAULT_PRINT_SETTINGS["printer_width"]))
    try:
        width = int(str(width).replace("mm", "").strip())
    except (TypeError, ValueError):
        width = DEFAULT_PRINT_SETTINGS["printer_width"]
    if width not in PRINTER_WIDTHS:
        width = DEFAULT_PRINT_SETTINGS["printer_width"]

    return {
        "printer_width": width,
        "auto_print": bool(data.get("auto_print", data.get("autoPrint", False))),
        "header_text": (data.get("header_text", data.get("headerText")) or "").strip(),
        "footer_text": (
            data.get("footer_text", data.get("footerText")) or DEFAULT_PRINT_SETTINGS["footer_text"]
        ).strip(),
    }


def get_print_settings(tenant_id: int) -> Dict[str, Any]:
    path = _settings_path(tenant_id)
    if not os.path.exists(path):
        return dict(DEFAULT_PRINT_SETTINGS)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f) or {}
    except (OSError, ValueError):
        logger.warning("Configuração de impressão ilegível, usando padrão", extra={"tenant_id": tenant_id})
        data = {}

    return _normalize_settings(data)


def save_print_settings(tenant_id: int, settings: Dict[str, Any]) -> Dict[str, Any]:
    normalized = _normalize_settings(settings)
    with open(_settings_path(tenant_id), "w", encoding="utf-8") as f:
        json.dump(normalized, f, ensure_ascii=False, indent=2)
    return normalized


# =========================
# Ticket da cozinha
# =========================

def build_ticket_lines(bill: Bill, store_name: str, settings: Dict[str, Any]) -> List[tuple[str, bool]]:
    """Linhas do ticket como ``(texto, negrito)``."""
    lines: List[tuple[str, bool]] = []

    def add(text: str = "", bold: bool = False) -> None:
        lines.append((text, bold))

    separator = "-" * (32 if settings["printer_width"] == 58 else 48)

    if settings.get("header_text"):
        add(settings["header_text"], True)
    add(store_name.upper(), True)
    add(separator)
    add(f"PEDIDO #{bill.order_number}", True)
    if bill.is_grouped:
        add(f"Conta agrupada: {len(bill.order_ids)} pedidos")
    if bill.order_type == "dine_in":
        add(f"MESA {bill.table_number or '-'}", True)
    else:
        add("DELIVERY", True)
    add(f"Cliente: {bill.customer_name}")
    add(f"Data: {bill.created_at.strftime('%d/%m/%Y %H:%M')}")
    add(separator)

    for item in bill.items:
        prefix = "[+] " if item.is_additional else ""
        add(f"{prefix}{item.quantity}x {item.name}", True)
        for side in item.selected_sides:
            add(f"   + {side.name}")
        if item.doneness:
            add(f"   Ponto: {item.doneness}")
        if item.note:
            add(f"   Obs: {item.note}")

    if bill.observation.strip():
        add(separator)
        add("OBSERVAÇÃO", True)
        add(bill.observation.strip().upper())

    if bill.order_type == "delivery" and bill.address.strip():
        add(separator)
        add("ENDEREÇO", True)
        for part in bill.address.split(","):
            if part.strip():
                add(part.strip())

    add(separator)
    if bill.payment_method:
        add(f"Pagamento: {bill.payment_method.upper()}")
    add(f"Total: {format_currency(bill.total)}", True)
    add(f"Status: {STATUS_LABELS.get(bill.status, bill.status).upper()}")
    if settings.get("footer_text"):
        add(separator)
        add(settings["footer_text"])
    return lines


def generate_ticket_pdf(bill: Bill, tenant_id: int, store_name: str, settings: Dict[str, Any] | None = None) -> str:
    """Gera o PDF do ticket na largura da bobina configurada e retorna o caminho."""
    settings = _normalize_settings(settings or get_print_settings(tenant_id))
    lines = build_ticket_lines(bill, store_name, settings)

    base_dir = os.path.join(TICKETS_DIR, f"tenant_{tenant_id}")
    os.makedirs(base_dir, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    file_path = os.path.join(base_dir, f"pedido_{bill.id}_{stamp}.pdf")

    width = settings["printer_width"] * mm
    font_size = 7 if settings["printer_width"] == 58 else 9
    gap = font_size + 4
    height = (len(lines) + 4) * gap

    c = canvas.Canvas(file_path, pagesize=(width, height))
    y = height - 2 * gap
    for text, bold in lines:
        c.setFont("Helvetica-Bold" if bold else "Helvetica", font_size)
        c.drawString(3 * mm, y, text)
        y -= gap
    c.showPage()
    c.save()
    return file_path


def auto_print_if_enabled(bill: Bill, tenant_id: int, store_name: str) -> str | None:
    """Gera o ticket quando a impressão automática está ligada.

    Falhas são registradas e nunca propagam para quem criou o pedido.
    """
    settings = get_print_settings(tenant_id)
    if not settings["auto_print"]:
        return None
    try:
        return generate_ticket_pdf(bill, tenant_id, store_name, settings)
    except Exception:
        logger.exception("Falha na impressão automática", extra={"tenant_id": tenant_id, "order_id": bill.id})
        return None
