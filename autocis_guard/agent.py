import json
from typing import Dict, List, Optional

import requests

from . import config
from .errors import AdvisoryError


class OllamaClient:
    def __init__(self, base_url: str = config.OLLAMA_URL, model: str = config.ADVISOR_MODEL,
                 temperature: float = config.ADVISOR_TEMPERATURE, timeout: int = config.ADVISOR_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api"
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_available(self) -> bool:
        """Check if Ollama is running and accessible"""
        try:
            response = self.session.get(f"{self.base_url}/", timeout=2)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def list_models(self) -> List[Dict]:
        """
        Get list of available models

        Returns:
            List of model information, empty when the service is unreachable
        """
        try:
            response = self.session.get(f"{self.api_url}/tags", timeout=5)
            if response.status_code == 200:
                return response.json().get('models', [])
        except (requests.RequestException, ValueError):
            pass
        return []

    def chat(self, messages: List[Dict], model: Optional[str] = None) -> str:
        """
        Chat with model using conversation format

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model name, defaults to the client's model

        Returns:
            Generated response text

        Raises:
            AdvisoryError: on transport failure, non-200 status or empty text
        """
        payload = {
            "model": model or self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": self.temperature,
            }
        }

        try:
            response = self.session.post(
                f"{self.api_url}/chat",
                json=payload,
                timeout=self.timeout
            )
        except requests.Timeout as e:
            raise AdvisoryError("Request timed out. The model might be too large or the query too complex.") from e
        except requests.RequestException as e:
            raise AdvisoryError(f"Advisory service unreachable: {e}") from e

        if response.status_code != 200:
            raise AdvisoryError(f"API request failed: {response.status_code} - {response.text[:200]}")

        # Ollama may return NDJSON (multiple JSON objects separated by newlines)
        chunks = []
        for line in response.text.splitlines():
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except ValueError:
                continue
            message = obj.get('message', {}) if isinstance(obj, dict) else {}
            content = message.get('content', '') if isinstance(message, dict) else ''
            if content:
                chunks.append(content)

        text = ''.join(chunks)
        if not chunks:
            # Fallback to single JSON object parsing
            try:
                text = response.json()["message"]["content"] or ''
            except (ValueError, KeyError, TypeError):
                text = ''

        if not text.strip():
            raise AdvisoryError("Empty response from advisory service")
        return text

    def complete(self, prompt: str) -> str:
        """Single-turn request used by the remediation advisor."""
        return self.chat([{"role": "user", "content": prompt}])
