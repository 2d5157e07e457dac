"""
Универсальный парсер платёжных вебхуков.
Конфигурируемый маппинг полей по провайдерам, на выходе — нормализованное
событие оплаты или возврата.
"""

from typing import Optional, Dict, Any
import hashlib

from affiliate_engine.logger import log_webhook

EVENT_PAYMENT = "payment"
EVENT_REFUND = "refund"


class WebhookConfig:
    """Конфигурация маппинга полей для конкретного провайдера"""

    def __init__(self, provider: str):
        self.provider = provider
        self.mappings = {
            "internal": {
                "event_id": "referenceId",
                "user_id": "userId",
                "amount": "amount",
                "reference_id": "referenceId",
                # Наличие transactionType -> оплата, type -> возврат
                "transaction_type": "transactionType",
                "refund_type": "type",
            },
            "stripe": {
                "event_id": "id",
                "event_type": "type",
                "user_id": "data.object.metadata.user_id",
                "reference_id": "data.object.id",
                "event_types": {
                    "invoice.paid": {
                        "kind": EVENT_PAYMENT,
                        "transaction_type": "subscription",
                        "amount": "data.object.amount_paid",
                    },
                    "payment_intent.succeeded": {
                        "kind": EVENT_PAYMENT,
                        "transaction_type": "credit_purchase",
                        "amount": "data.object.amount_received",
                    },
                    "charge.refunded": {
                        "kind": EVENT_REFUND,
                        "refund_type": "refund",
                    },
                    "charge.dispute.created": {
                        "kind": EVENT_REFUND,
                        "refund_type": "chargeback",
                    },
                },
            },
        }

    def get_mapping(self) -> Dict[str, Any]:
        """Получить маппинг для провайдера"""
        return self.mappings.get(self.provider, {})


class WebhookParser:
    """Универсальный парсер вебхуков"""

    def __init__(self, provider: str, payload: Dict[str, Any]):
        self.provider = provider
        self.payload = payload
        self.config = WebhookConfig(provider)
        self.mapping = self.config.get_mapping()

    def parse(self) -> Optional[Dict[str, Any]]:
        """
        Распарсить вебхук.

        Оплата: {kind: "payment", user_id, amount, transaction_type, reference_id}
        Возврат: {kind: "refund", user_id, reference_id, type}
        Непонятное событие -> None.
        """
        if not self.mapping:
            log_webhook.warning(f"Неизвестный провайдер: {self.provider}")
            return None

        if not isinstance(self.payload, dict):
            log_webhook.warning(f"Payload не объект: provider={self.provider}")
            return None

        if self.provider == "internal":
            result = self._parse_internal()
        else:
            result = self._parse_typed()

        if result is None:
            return None

        if not result["user_id"] or not result["reference_id"]:
            log_webhook.warning(
                f"В вебхуке нет user_id/reference_id: provider={self.provider}, "
                f"event_id={result['event_id']}"
            )
            return None

        log_webhook.info(
            f"Вебхук распарсен: provider={self.provider}, event_id={result['event_id']}, "
            f"kind={result['kind']}"
        )
        return result

    def _base(self, kind: str) -> Dict[str, Any]:
        mapping = self.mapping
        return {
            "provider": self.provider,
            "kind": kind,
            "event_id": self._safe_str(self._get_value(mapping.get("event_id"))),
            "user_id": self._safe_str(self._get_value(mapping.get("user_id"))),
            "reference_id": self._safe_str(self._get_value(mapping.get("reference_id"))),
        }

    def _parse_internal(self) -> Optional[Dict[str, Any]]:
        mapping = self.mapping
        transaction_type = self._get_value(mapping["transaction_type"])

        if transaction_type is not None:
            result = self._base(EVENT_PAYMENT)
            result["amount"] = self._safe_int(self._get_value(mapping["amount"]))
            result["transaction_type"] = transaction_type
            return result

        refund_type = self._get_value(mapping["refund_type"])
        if refund_type is not None:
            result = self._base(EVENT_REFUND)
            result["type"] = refund_type
            return result

        log_webhook.warning("Internal вебхук без transactionType и type")
        return None

    def _parse_typed(self) -> Optional[Dict[str, Any]]:
        mapping = self.mapping
        event_type = self._get_value(mapping.get("event_type"))
        event_config = mapping.get("event_types", {}).get(event_type)

        if not event_config:
            log_webhook.info(f"Событие пропущено: provider={self.provider}, type={event_type}")
            return None

        result = self._base(event_config["kind"])
        if event_config["kind"] == EVENT_PAYMENT:
            result["amount"] = self._safe_int(self._get_value(event_config["amount"]))
            result["transaction_type"] = event_config["transaction_type"]
        else:
            result["type"] = event_config["refund_type"]
        return result

    def _get_value(self, key: str, default: Any = None) -> Any:
        """Получить значение из payload по ключу (поддерживаем nested)"""
        if not key:
            return default

        keys = key.split(".")
        value = self.payload

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def _safe_int(self, value: Any) -> Optional[int]:
        """Безопасно конвертировать в int (дробные суммы не принимаем)"""
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
        return None

    def _safe_str(self, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)


def calculate_payload_hash(payload: bytes) -> str:
    """Вычислить хеш payload для идемпотентности"""
    return hashlib.sha256(payload).hexdigest()
