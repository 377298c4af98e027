"""
LLM Service - text-generation oracle used to estimate regional sighting probabilities

Supports:
- Local model via TGI (Text Generation Inference)
- OpenRouter API (cloud fallback)
- Auto mode: tries local first, falls back to OpenRouter

Configuration via environment variables:
- LLM_PROVIDER: "local", "openrouter", or "auto" (default)
- LLM_API_URL: URL for local TGI instance
- OPENROUTER_API_KEY: API key for OpenRouter
- OPENROUTER_MODEL: Model to use on OpenRouter
"""
import httpx
import logging
from typing import Optional, Dict, Any
from spotitnow.config import settings

logger = logging.getLogger(__name__)


def _failure(provider: str, error: str) -> Dict[str, Any]:
    return {
        "success": False,
        "error": error,
        "generated_text": "",
        "provider": provider
    }


class LLMService:
    """
    Service for interacting with LLM providers.

    Every call returns a dict with ``success`` and ``generated_text``; the
    caller decides what an unsuccessful generation means for it.
    """

    def __init__(self):
        self.provider = settings.LLM_PROVIDER.lower()

        # Local TGI settings
        self.local_url = settings.LLM_API_URL
        self.local_model = settings.LLM_MODEL

        # OpenRouter settings
        self.openrouter_url = settings.OPENROUTER_API_URL
        self.openrouter_key = settings.OPENROUTER_API_KEY
        self.openrouter_model = settings.OPENROUTER_MODEL
        self.openrouter_site_url = settings.OPENROUTER_SITE_URL
        self.openrouter_site_name = settings.OPENROUTER_SITE_NAME

        self.timeout = settings.LLM_TIMEOUT_SEC

        # None = not checked, True/False = checked
        self._local_available = None

        logger.info(f"LLM Service initialized with provider: {self.provider}")

    async def _generate_local(
        self,
        prompt: str,
        max_new_tokens: int,
        temperature: float,
        system_prompt: Optional[str]
    ) -> Dict[str, Any]:
        """Generate text using local TGI"""
        if system_prompt:
            formatted_prompt = f"<s>[INST] {system_prompt}\n\n{prompt} [/INST]"
        else:
            formatted_prompt = f"<s>[INST] {prompt} [/INST]"

        payload = {
            "inputs": formatted_prompt,
            "parameters": {
                "max_new_tokens": max_new_tokens,
                "temperature": temperature,
                "do_sample": temperature > 0,
                "return_full_text": False
            }
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.local_url}/generate", json=payload)
                response.raise_for_status()
                result = response.json()
        except httpx.TimeoutException:
            logger.error("Local LLM request timed out")
            self._local_available = False
            return _failure("local", "Local LLM request timed out")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Local LLM generation error: {e}")
            self._local_available = False
            return _failure("local", str(e))

        self._local_available = True
        return {
            "success": True,
            "generated_text": result.get("generated_text", ""),
            "model": self.local_model,
            "provider": "local"
        }

    async def _generate_openrouter(
        self,
        prompt: str,
        max_new_tokens: int,
        temperature: float,
        system_prompt: Optional[str]
    ) -> Dict[str, Any]:
        """Generate text using OpenRouter API"""
        if not self.openrouter_key:
            return _failure("openrouter", "OpenRouter API key not configured")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.openrouter_model,
            "messages": messages,
            "max_tokens": max_new_tokens,
            "temperature": temperature
        }

        headers = {
            "Authorization": f"Bearer {self.openrouter_key}",
            "HTTP-Referer": self.openrouter_site_url,
            "X-Title": self.openrouter_site_name,
            "Content-Type": "application/json"
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.openrouter_url}/chat/completions",
                    json=payload,
                    headers=headers
                )
                response.raise_for_status()
                result = response.json()
        except httpx.TimeoutException:
            logger.error("OpenRouter request timed out")
            return _failure("openrouter", "OpenRouter request timed out")
        except httpx.HTTPStatusError as e:
            error_msg = f"OpenRouter API error: {e.response.status_code}"
            logger.error(error_msg)
            return _failure("openrouter", error_msg)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenRouter generation error: {e}")
            return _failure("openrouter", str(e))

        # OpenAI-compatible response
        generated_text = ""
        if result.get("choices"):
            generated_text = result["choices"][0].get("message", {}).get("content", "") or ""

        return {
            "success": True,
            "generated_text": generated_text,
            "model": self.openrouter_model,
            "provider": "openrouter",
            "usage": result.get("usage", {})
        }

    async def generate(
        self,
        prompt: str,
        max_new_tokens: int = 4096,
        temperature: float = 0.2,
        system_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Generate text using configured LLM provider.

        In "auto" mode the local model is tried first unless it already
        failed once, then OpenRouter.

        Returns:
            Dict with success, generated_text, model, provider, and optional error
        """
        if self.provider == "local":
            return await self._generate_local(prompt, max_new_tokens, temperature, system_prompt)

        if self.provider == "openrouter":
            return await self._generate_openrouter(prompt, max_new_tokens, temperature, system_prompt)

        if self.provider == "auto":
            if self._local_available is not False:
                result = await self._generate_local(prompt, max_new_tokens, temperature, system_prompt)
                if result["success"]:
                    return result
                logger.warning("Local LLM failed, falling back to OpenRouter")
            return await self._generate_openrouter(prompt, max_new_tokens, temperature, system_prompt)

        return _failure(self.provider, f"Unknown LLM provider: {self.provider}")

    async def health_check(self) -> Dict[str, Any]:
        """Report which providers are configured and reachable"""
        health = {
            "provider": self.provider,
            "local": {"configured": bool(self.local_url), "healthy": False},
            "openrouter": {"configured": bool(self.openrouter_key), "healthy": False}
        }

        if self.local_url:
            try:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.get(f"{self.local_url}/health")
                    health["local"]["healthy"] = response.status_code == 200
            except httpx.HTTPError as e:
                logger.debug(f"Local LLM health check failed: {e}")

        # No cheap way to check OpenRouter; trust a configured key
        health["openrouter"]["healthy"] = bool(self.openrouter_key)

        if self.provider == "local":
            health["healthy"] = health["local"]["healthy"]
        elif self.provider == "openrouter":
            health["healthy"] = health["openrouter"]["healthy"]
        else:
            health["healthy"] = health["local"]["healthy"] or health["openrouter"]["healthy"]

        return health


# Singleton instance
llm_service = LLMService()
