from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import date
from typing import Iterable, Optional

import requests

from cafepos.domain.errors import ValidationError
from cafepos.domain.models import Product, Sale

log = logging.getLogger("cafepos.ai")

DISABLED_MESSAGE = "AI functionality is disabled because the API key is not configured."
ERROR_MESSAGE = (
    "Sorry, I encountered an error while analyzing the data. "
    "Please check the configuration and try again."
)

API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def _product_payload(p: Product) -> dict:
    d = asdict(p)
    d["image_urls"] = list(p.image_urls)
    return d


def _sale_payload(s: Sale) -> dict:
    return {
        "id": s.id,
        "items": [asdict(it) for it in s.items],
        "total": s.total,
        "created_at": s.created_at.isoformat(sep=" "),
    }


class InsightsService:
    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash", timeout: float = 30.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _post_json(self, url: str, body: dict) -> dict:
        r = requests.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _system_instruction(self) -> str:
        return (
            "You are a helpful business analyst for a cafe. "
            "Analyze the provided JSON data to answer the user's question. "
            "Provide a concise, helpful, and friendly answer. "
            "Do not output JSON unless specifically asked. "
            f"Today's date is {date.today().isoformat()}."
        )

    def build_prompt(self, question: str, products: Iterable[Product], sales: Iterable[Sale]) -> str:
        products_json = json.dumps([_product_payload(p) for p in products], indent=2)
        sales_json = json.dumps([_sale_payload(s) for s in sales], indent=2)
        return (
            f'User Question: "{question}"\n\n'
            "Here is the available data:\n\n"
            f"Products List (inventory):\n{products_json}\n\n"
            f"Sales History:\n{sales_json}\n\n"
            "Please answer the user's question based on this data."
        )

    def _extract_text(self, data: dict) -> str:
        # {"candidates":[{"content":{"parts":[{"text":"..."}]}}]}
        candidates = data.get("candidates") or []
        if not candidates:
            raise ValueError(f"AI response has no candidates. Raw: {data}")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))
        if not text.strip():
            raise ValueError("AI response has no text.")
        return text

    def ask(self, question: str, products: Iterable[Product], sales: Iterable[Sale]) -> str:
        question = (question or "").strip()
        if not question:
            raise ValidationError("Question is required.")
        if not self.api_key:
            log.warning("ai_disabled reason=missing_api_key")
            return DISABLED_MESSAGE

        body = {
            "systemInstruction": {"parts": [{"text": self._system_instruction()}]},
            "contents": [{"role": "user", "parts": [{"text": self.build_prompt(question, products, sales)}]}],
            "generationConfig": {"temperature": 0.5},
        }
        try:
            data = self._post_json(API_URL.format(model=self.model), body)
            answer = self._extract_text(data)
        except (requests.RequestException, ValueError, AttributeError) as e:
            log.warning("ai_request_failed model=%s error=%s", self.model, e)
            return ERROR_MESSAGE

        log.info("ai_answered model=%s chars=%s", self.model, len(answer))
        return answer
