from collections.abc import Callable

from switchboard.errors import RequestValidationError
from switchboard.model import LanguageModel

ModelFactory = Callable[[str], LanguageModel]


class ProviderRegistry:
    """Maps vendor ids to factories that build language models.

    Build one at startup and pass it to whatever needs it; there is no
    module-level registry.  Vendor ids are case-insensitive.

    Example::

        registry = ProviderRegistry()
        registry.register("openai", lambda model_id: LanguageModel(OpenAIProvider(), model_id))
        model = registry.language_model("openai/gpt-4o")
    """

    def __init__(self):
        self._factories: dict[str, ModelFactory] = {}

    def register(self, vendor: str, factory: ModelFactory) -> "ProviderRegistry":
        self._factories[vendor.lower()] = factory
        return self

    def has_provider(self, vendor: str) -> bool:
        return vendor.lower() in self._factories

    @property
    def provider_ids(self) -> list[str]:
        return sorted(self._factories)

    def language_model(self, model_string: str) -> LanguageModel:
        """Build a model from a ``"vendor/model-id"`` string.

        Only the first ``/`` separates the vendor, so model ids such as
        ``"openrouter/meta-llama/llama-3-70b"`` keep their slashes.

        Raises:
            RequestValidationError: If the string is malformed or the
                vendor is not registered.
        """
        vendor, model_id = _parse_model_string(model_string)
        factory = self._factories.get(vendor.lower())
        if factory is None:
            available = ", ".join(self.provider_ids) or "none"
            raise RequestValidationError(
                f"Provider '{vendor}' is not registered. Available providers: {available}",
                vendor=vendor,
            )
        return factory(model_id)


def _parse_model_string(model_string: str) -> tuple[str, str]:
    vendor, sep, model_id = model_string.partition("/")
    if not sep or not vendor or not model_id:
        raise RequestValidationError(
            f"Invalid model string '{model_string}'. "
            f"Expected format: 'provider/model-id' (e.g. 'openai/gpt-4o')"
        )
    return vendor, model_id
