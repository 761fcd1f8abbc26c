"""Per-provider capability table used by the parameter validator.

Ranges are inclusive; None leaves that side unbounded.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ParameterRange:
    minimum: float | None = None
    maximum: float | None = None
    integer: bool = False

    def contains(self, value: float) -> bool:
        if self.integer and not float(value).is_integer():
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def describe(self) -> str:
        low = "-inf" if self.minimum is None else f"{self.minimum:g}"
        high = "inf" if self.maximum is None else f"{self.maximum:g}"
        kind = "integer" if self.integer else "number"
        return f"{kind} in [{low}, {high}]"


@dataclass(frozen=True)
class ProviderCapabilities:
    name: str
    parameters: dict[str, ParameterRange] = field(default_factory=dict)
    structured_output: bool = True


_PENALTY = ParameterRange(-2, 2)
_TOP_P = ParameterRange(0, 1)
_TOKENS = ParameterRange(1, None, integer=True)
_SEED = ParameterRange(None, None, integer=True)

PROVIDERS: dict[str, ProviderCapabilities] = {
    "openai": ProviderCapabilities(
        "openai",
        {
            "temperature": ParameterRange(0, 2),
            "top_p": _TOP_P,
            "frequency_penalty": _PENALTY,
            "presence_penalty": _PENALTY,
            "max_tokens": _TOKENS,
            "n": ParameterRange(1, None, integer=True),
            "seed": _SEED,
            "top_logprobs": ParameterRange(0, 20, integer=True),
        },
    ),
    "anthropic": ProviderCapabilities(
        "anthropic",
        {
            "temperature": ParameterRange(0, 1),
            "top_p": _TOP_P,
            "top_k": ParameterRange(0, None, integer=True),
            "max_tokens": _TOKENS,
        },
    ),
    "google": ProviderCapabilities(
        "google",
        {
            "temperature": ParameterRange(0, 2),
            "top_p": _TOP_P,
            "top_k": ParameterRange(1, None, integer=True),
            "max_output_tokens": _TOKENS,
            "candidate_count": ParameterRange(1, None, integer=True),
            "seed": _SEED,
            "presence_penalty": _PENALTY,
            "frequency_penalty": _PENALTY,
        },
    ),
    "deepseek": ProviderCapabilities(
        "deepseek",
        {
            "temperature": ParameterRange(0, 2),
            "top_p": _TOP_P,
            "max_tokens": ParameterRange(1, 8192, integer=True),
            "frequency_penalty": _PENALTY,
            "presence_penalty": _PENALTY,
            "top_logprobs": ParameterRange(0, 20, integer=True),
        },
    ),
    "mistral": ProviderCapabilities(
        "mistral",
        {
            "temperature": ParameterRange(0, None),
            "top_p": _TOP_P,
            "max_tokens": _TOKENS,
            "random_seed": _SEED,
            "presence_penalty": _PENALTY,
            "frequency_penalty": _PENALTY,
            "n": ParameterRange(1, None, integer=True),
        },
    ),
    "xai": ProviderCapabilities(
        "xai",
        {
            "temperature": ParameterRange(0, 2),
            "top_p": _TOP_P,
            "frequency_penalty": _PENALTY,
            "presence_penalty": _PENALTY,
            "max_tokens": _TOKENS,
            "n": ParameterRange(1, None, integer=True),
            "seed": _SEED,
            "top_logprobs": ParameterRange(0, 20, integer=True),
        },
    ),
    "cohere": ProviderCapabilities(
        "cohere",
        {
            "temperature": ParameterRange(0, None),
            "max_tokens": _TOKENS,
            "k": ParameterRange(0, 500, integer=True),
            "p": ParameterRange(0.01, 0.99),
            "frequency_penalty": ParameterRange(0, 1),
            "presence_penalty": ParameterRange(0, 1),
            "seed": _SEED,
        },
    ),
    "openrouter": ProviderCapabilities(
        "openrouter",
        {
            "max_tokens": _TOKENS,
            "temperature": ParameterRange(0, 2),
            "seed": _SEED,
            "top_p": _TOP_P,
            "top_k": ParameterRange(1, None, integer=True),
            "frequency_penalty": _PENALTY,
            "presence_penalty": _PENALTY,
            "repetition_penalty": ParameterRange(0, 2),
            "min_p": ParameterRange(0, 1),
        },
        structured_output=False,
    ),
    "ollama": ProviderCapabilities(
        "ollama",
        {
            "temperature": ParameterRange(0, None),
            "top_p": _TOP_P,
            "top_k": ParameterRange(1, None, integer=True),
            "num_predict": ParameterRange(-1, None, integer=True),
            "seed": _SEED,
            "repeat_penalty": ParameterRange(0, None),
        },
    ),
}


def get_provider(name: str | None) -> ProviderCapabilities | None:
    if not name:
        return None
    return PROVIDERS.get(name.strip().lower())
