import asyncio
import json
import logging

import httpx

from app.core.config import META_API_VERSION, META_WA_ACCESS_TOKEN, META_WA_PHONE_NUMBER_ID

logger = logging.getLogger(__name__)


class WhatsAppSendError(RuntimeError):
    def __init__(self, status_code: int, body_text: str):
        super().__init__(f"Erro WhatsApp {status_code}: {body_text}")
        self.status_code = status_code
        self.body_text = body_text


def _should_retry(status_code: int, body_text: str) -> bool:
    if status_code in (429, 500, 502, 503, 504):
        return True

    # Erro genérico frequente do Cloud API
    try:
        data = json.loads(body_text or "{}")
        code = (data.get("error") or {}).get("code")
    except ValueError:
        return False
    return code == 131000


def _backoff_seconds(attempt: int) -> float:
    # 1s, 2s, 4s... (máx 8s)
    return min(1.0 * (2 ** max(0, attempt - 1)), 8.0)


async def send_text(
    to: str,
    text: str,
    phone_number_id: str | None = None,
    access_token: str | None = None,
    retries: int = 3,
    timeout: float = 20.0,
    transport: httpx.AsyncBaseTransport | None = None,
):
    token = access_token or META_WA_ACCESS_TOKEN
    phone_id = phone_number_id or META_WA_PHONE_NUMBER_ID

    if not token or not phone_id:
        raise RuntimeError("Faltam META_WA_ACCESS_TOKEN ou META_WA_PHONE_NUMBER_ID no .env")

    url = f"https://graph.facebook.com/{META_API_VERSION}/{phone_id}/messages"
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    payload = {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "text",
        "text": {"preview_url": False, "body": text},
    }

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        for attempt in range(1, retries + 1):
            try:
                response = await client.post(url, headers=headers, json=payload)
            except (httpx.TimeoutException, httpx.NetworkError):
                if attempt < retries:
                    await asyncio.sleep(_backoff_seconds(attempt))
                    continue
                raise

            body_text = response.text
            if 200 <= response.status_code < 300:
                try:
                    return response.json()
                except ValueError:
                    return {"ok": True, "raw": body_text}

            if _should_retry(response.status_code, body_text) and attempt < retries:
                logger.warning("WhatsApp %s, nova tentativa %s/%s", response.status_code, attempt + 1, retries)
                await asyncio.sleep(_backoff_seconds(attempt))
                continue

            raise WhatsAppSendError(response.status_code, body_text)

    raise RuntimeError("Falha desconhecida ao enviar WhatsApp")
