"""Display-name formatting for models, providers, and counters.

Pure string utilities with no I/O. Used by the presence assembler to turn raw
machine identifiers (``deepseek-ai/Deepseek-V3-0324``, ``chat_completion``)
into short human-readable labels.
"""

import re
from typing import Any, Dict

# Known provider identifiers -> friendly names. Keys are lowercase.
# Extend by adding entries; lookup is always case-insensitive on the raw id.
PROVIDER_DISPLAY_NAMES: Dict[str, str] = {
    "openai": "OpenAI",
    "azure_openai": "Azure OpenAI",
    "anthropic": "Anthropic",
    "claude": "Anthropic",
    "openrouter": "OpenRouter",
    "makersuite": "Google AI Studio",
    "google": "Google AI Studio",
    "vertexai": "Google Vertex AI",
    "mistralai": "Mistral AI",
    "cohere": "Cohere",
    "perplexity": "Perplexity",
    "groq": "Groq",
    "deepseek": "DeepSeek",
    "xai": "xAI",
    "ai21": "AI21",
    "nanogpt": "NanoGPT",
    "togetherai": "Together AI",
    "featherless": "Featherless",
    "infermaticai": "InfermaticAI",
    "dreamgen": "DreamGen",
    "mancer": "Mancer",
    "huggingface": "Hugging Face",
    "nous": "Nous Portal",
    "zai": "GLM (z.ai)",
    "moonshot": "Moonshot AI",
    "minimax": "MiniMax",
    "kobold": "KoboldAI",
    "koboldcpp": "KoboldCpp",
    "ollama": "Ollama",
    "llamacpp": "llama.cpp",
    "vllm": "vLLM",
    "aphrodite": "Aphrodite",
    "tabby": "TabbyAPI",
    "ooba": "Text Generation WebUI",
    "textgenerationwebui": "Text Generation WebUI",
    "novel": "NovelAI",
    "horde": "AI Horde",
    "custom": "Custom",
}

_MODEL_WORD_SPLIT = re.compile(r"[-\s]+")
_PROVIDER_TOKEN_SPLIT = re.compile(r"[\s_\-()]+")


def _as_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    try:
        return str(raw)
    except Exception:
        return ""


def format_model_name(raw: Any) -> str:
    """Turn a raw model id into a display name.

    ``"deepseek-ai/Deepseek-V3-0324"`` -> ``"Deepseek V3 0324"``,
    ``"llama3:8b"`` -> ``"Llama3"``. Empty or missing input yields ``""``.
    """
    name = _as_text(raw).strip()
    if not name:
        return ""

    # Ollama-style tags ("llama3:8b-instruct") are dropped entirely
    if ":" in name:
        name = name.split(":", 1)[0]
    if "/" in name:
        name = name.rsplit("/", 1)[-1]

    words = [w for w in _MODEL_WORD_SPLIT.split(name) if w]
    return " ".join(w[0].upper() + w[1:] for w in words)


def format_provider_name(raw: Any) -> str:
    """Title-case a provider id: ``"some_weird_id"`` -> ``"Some Weird Id"``."""
    tokens = [t for t in _PROVIDER_TOKEN_SPLIT.split(_as_text(raw)) if t]
    return " ".join(t[0].upper() + t[1:].lower() for t in tokens)


def get_pretty_provider(raw: Any) -> str:
    """Friendly provider name from the display table, else a formatted fallback."""
    key = _as_text(raw).strip().lower()
    if not key:
        return ""
    pretty = PROVIDER_DISPLAY_NAMES.get(key)
    if pretty:
        return pretty
    return format_provider_name(raw)


def format_tokens(count: int) -> str:
    """Format token count for display (e.g., 12.5k, 1.2M)."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    elif count >= 1000:
        return f"{count / 1000:.1f}k"
    return str(count)


def format_count(count: int, noun: str) -> str:
    """``format_count(1, "message")`` -> ``"1 message"``; plural otherwise."""
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"
