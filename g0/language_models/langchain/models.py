"""
Creation of the LangChain chat model objects that the adapter wraps.

The model objects are created from a `LanguageModelSettings` object,
which may be given programmatically or be read from config.toml as
part of the `Settings` object. The objects are memoized in the global
repository `langchain_models`, so that all adapters created with the
same settings share the vendor client.

Examples:

```python
from g0.language_models.langchain.models import (
    create_model_from_spec,
    create_model_from_settings,
)
from g0.config import LanguageModelSettings

settings = LanguageModelSettings(
    model="OpenAI/gpt-4o",
    temperature=0.7,
    max_tokens=1000,
)
model = create_model_from_settings(settings)

# equivalent, using the specification fields
model = create_model_from_spec("OpenAI/gpt-4o", temperature=0.7)
```

The vendor integrations are optional dependencies, installed with the
extras of the package (`pip install g0-assistant[openai]`). The
'Debug' provider needs none (see the `debug` module).

Note:
    Support for new model sources is added to `_INTEGRATIONS` and to
    the match statement of `_model_kwargs`, and to the ModelSource
    definition of the configuration.
"""

import importlib
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel

from g0.config.config import (
    LanguageModelSettings,
    ModelSource,
    ProviderParam,
)
from ..lazy_dict import LazyLoadingDict
from .debug import create_debug_model

# module, class and extra of the LangChain integration of each vendor
_INTEGRATIONS: dict[str, tuple[str, str, str]] = {
    'Anthropic': ("langchain_anthropic", "ChatAnthropic", "anthropic"),
    'Gemini': ("langchain_google_genai", "ChatGoogleGenerativeAI", "gemini"),
    'Mistral': ("langchain_mistralai", "ChatMistralAI", "mistral"),
    'OpenAI': ("langchain_openai", "ChatOpenAI", "openai"),
}


def _integration_class(source: ModelSource) -> type[BaseChatModel]:
    module_name, class_name, extra = _INTEGRATIONS[source]
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        package = module_name.replace('_', '-')
        raise ImportError(
            f"{source} models require the '{package}' package. "
            f"Install it with: pip install g0-assistant[{extra}]"
        ) from e
    return getattr(module, class_name)


def _model_kwargs(settings: LanguageModelSettings) -> dict[str, Any]:
    """The arguments of the constructor of the vendor class. The
    vendor classes differ in the names of the model, token limit and
    timeout arguments."""
    name = settings.get_model_name()
    kwargs: dict[str, Any] = {
        'temperature': settings.temperature,
        'max_retries': settings.max_retries,
    }
    match settings.get_model_source():
        case "Anthropic":
            kwargs['model_name'] = name
            kwargs['max_tokens_to_sample'] = settings.max_tokens or 4096
            kwargs['timeout'] = settings.timeout
            kwargs['stop'] = None
        case "Gemini":
            kwargs['model'] = name
            if settings.max_tokens is not None:
                kwargs['max_output_tokens'] = settings.max_tokens
            if settings.timeout is not None:
                kwargs['timeout'] = settings.timeout
        case "Mistral":
            kwargs['model_name'] = name
            if settings.max_tokens is not None:
                kwargs['max_tokens'] = settings.max_tokens
            if settings.timeout is not None:
                kwargs['timeout'] = int(settings.timeout)
        case "OpenAI":
            kwargs['model'] = name
            # streamed tool calls arrive as chat completion chunks
            kwargs['use_responses_api'] = False
            if settings.max_tokens is not None:
                kwargs['max_tokens'] = settings.max_tokens
            if settings.timeout is not None:
                kwargs['timeout'] = settings.timeout
        case source:
            raise ValueError(f"No LangChain integration for {source}")
    kwargs.update(settings.provider_params)
    return kwargs


def _create_model_instance(settings: LanguageModelSettings) -> BaseChatModel:
    """
    Factory of the memoized models.

    Raises:
        ImportError: if the integration package is not installed
    """
    source: ModelSource = settings.get_model_source()
    if source == "Debug":
        return create_debug_model(settings)
    model_class = _integration_class(source)
    return model_class(**_model_kwargs(settings))


# Public interface----------------------------------------------
langchain_models: LazyLoadingDict[LanguageModelSettings, BaseChatModel] = (
    LazyLoadingDict(_create_model_instance)
)


def create_model_from_spec(
    model: str,
    *,
    temperature: float = 0.1,
    max_tokens: int | None = None,
    max_retries: int = 2,
    timeout: float | None = None,
    provider_params: dict[str, ProviderParam] | None = None,
) -> BaseChatModel:
    """
    Create langchain model from specifications.

    Args:
        model: the model in the form source/model, such as
            'OpenAI/gpt-4o'

    Returns:
        a Langchain model object.

    Raises:
        ValidationError: for invalid specifications
        ImportError: if the vendor package is not installed
    """
    spec = LanguageModelSettings(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        max_retries=max_retries,
        timeout=timeout,
        provider_params=provider_params or {},
    )
    return langchain_models[spec]


def create_model_from_settings(
    settings: LanguageModelSettings,
) -> BaseChatModel:
    """The memoized model of the settings.

    Raises:
        ImportError: if the vendor package is not installed
    """
    return langchain_models[settings]
