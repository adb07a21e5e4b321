"""
Configuration of the g0 assistant.

This file also contains the definitions of the language model
providers supported by the package, and the configuration of the agent
loop and of the tools that are offered to the model.

Settings are read, in order of priority, from the arguments given to
the constructor, from the config.toml file in the working directory,
and from environment variables with prefix G0_ (nested fields use a
double underscore, e.g. G0_AGENT__MAX_ITERATIONS=10).

Credentials for the language model vendors are not stored in the
configuration file. They are read from the environment variables that
the vendor libraries use (see `CREDENTIAL_ENV_VARS`).
"""

import os
import re
from pathlib import Path
from typing import Any, Literal, Self, get_args

import tomlkit
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)
from tomlkit.items import Table

from g0.language_models.errors import ConfigurationError

# Providers of the language models. Each provider needs a case in the
# model factory of the LangChain adapter
ModelSource = Literal[
    'OpenAI', 'Anthropic', 'Mistral', 'Gemini', 'Debug'
]

# Provider parameters are written to the toml file
ProviderParam = str | int | float | bool

# Environment variables holding the credentials of each provider
CREDENTIAL_ENV_VARS: dict[str, str] = {
    'OpenAI': "OPENAI_API_KEY",
    'Anthropic': "ANTHROPIC_API_KEY",
    'Mistral': "MISTRAL_API_KEY",
    'Gemini': "GOOGLE_API_KEY",
}

DEFAULT_CONFIG_FILE = "config.toml"

DEFAULT_SYSTEM_PROMPT = (
    "You are G0, a helpful AI agent designed to assist developers "
    "building games with the Godot Engine. You have access to the "
    "following tools:\n\n"
    "## Documentation Tools\n"
    "- **search_docs**: Search the Godot Engine documentation for "
    "classes, methods, tutorials, and best practices.\n"
    "- **get_class_info**: Get detailed information about a specific "
    "Godot class or node type (e.g., 'Node2D', 'CharacterBody3D').\n"
    "- **list_doc_topics**: List available documentation topics and "
    "categories.\n\n"
    "## File Tools\n"
    "- **read_file**: Read the contents of a file from the project.\n"
    "- **list_files**: List files and directories in the project.\n"
    "- **search_files**: Search for code patterns across project files "
    "using regular expressions.\n"
    "- **find_files**: Find files by name or extension using glob "
    "patterns (e.g., '*.cs', '*Controller*').\n\n"
    "## Web Search Tool\n"
    "- **search_web**: Search the web for current information, "
    "tutorials, library documentation, or general programming topics.\n\n"
    "## Guidelines\n"
    "- When users ask about Godot classes, methods, or engine features, "
    "use the documentation tools first.\n"
    "- When users ask about their project code, use the file tools.\n"
    "- For recent updates, external libraries, or general programming, "
    "use web search.\n"
    "- Provide clear, concise answers with code examples when helpful.\n"
    "- If you're unsure about something, search the documentation or "
    "project files before guessing."
)


# 'Provider/model', blanks allowed around the slash
_MODEL_SPEC = re.compile(r"^\s*([A-Za-z]+)\s*/\s*([^/\s][^/\r\n]*?)\s*$")

# vendor parameters accepted in provider_params. Debug accepts any
# parameter ('message' fixes the reply of the fake model)
ALLOWED_PROVIDER_PARAMS: dict[str, frozenset[str]] = {
    'OpenAI': frozenset(
        {'frequency_penalty', 'presence_penalty', 'top_p', 'seed'}
    ),
    'Anthropic': frozenset({'top_p', 'top_k'}),
    'Mistral': frozenset({'top_p', 'random_seed', 'safe_mode'}),
    'Gemini': frozenset({'top_p', 'top_k', 'candidate_count'}),
}


class LanguageModelSettings(BaseModel):
    """
    The language model answering the user, and the parameters of the
    calls to its vendor.

    Attributes:
        model: 'Provider/model', e.g. 'OpenAI/gpt-4o'. The provider is
            one of the ModelSource values
        temperature: sampling temperature, 0.0 to 2.0
        max_tokens: limit of the generated tokens of each reply
        max_retries: retries of the vendor library on transient errors
        timeout: timeout of a call to the vendor, in seconds
        provider_params: vendor-specific parameters (see
            ALLOWED_PROVIDER_PARAMS)

    Objects are frozen and hashable, as they are the keys of the
    repository of the vendor model objects.
    """

    model: str = Field(
        description="The model as 'Provider/model' "
        "(e.g. 'Gemini/gemini-2.5-flash')"
    )
    temperature: float = Field(
        default=0.1, ge=0.0, le=2.0, description="Sampling temperature"
    )
    max_tokens: int | None = Field(
        default=None, ge=1, description="Maximum tokens of a reply"
    )
    max_retries: int = Field(
        default=2, ge=0, description="Retries on transient vendor errors"
    )
    timeout: float | None = Field(
        default=None, gt=0, description="Timeout of a vendor call (s)"
    )
    provider_params: dict[str, ProviderParam] = Field(
        default_factory=dict,
        description="Vendor-specific parameters (e.g. top_p)",
    )

    model_config = ConfigDict(frozen=True, extra='forbid')

    def __hash__(self) -> int:
        return hash(
            (
                self.model,
                self.temperature,
                self.max_tokens,
                self.max_retries,
                self.timeout,
                frozenset(self.provider_params.items()),
            )
        )

    def get_model_source(self) -> ModelSource:
        return self.model.partition('/')[0]  # type: ignore

    def get_model_name(self) -> str:
        return self.model.partition('/')[2]

    @field_validator('model', mode='after')
    @classmethod
    def normalize_model_spec(cls, spec: str) -> str:
        match = _MODEL_SPEC.match(spec)
        if match is None:
            raise ValueError(
                f"Invalid model '{spec.strip()}': expected "
                "'Provider/model', e.g. 'OpenAI/gpt-4o'"
            )
        source, name = match.groups()
        if source not in get_args(ModelSource):
            raise ValueError(
                f"Unknown model provider '{source}'. Supported "
                f"providers: {', '.join(get_args(ModelSource))}"
            )
        return f"{source}/{name}"

    @model_validator(mode='after')
    def check_provider_params(self) -> Self:
        allowed = ALLOWED_PROVIDER_PARAMS.get(self.get_model_source())
        if allowed is None:
            return self
        unknown = set(self.provider_params) - allowed
        if unknown:
            raise ValueError(
                f"Parameters not supported by "
                f"{self.get_model_source()} models: "
                f"{', '.join(sorted(unknown))} "
                f"(allowed: {', '.join(sorted(allowed))})"
            )
        return self


class AgentSettings(BaseModel):
    """
    Configuration of the agent loop.

    Attributes:
        use_agent: offer tools to the model. If False, the model is
            called directly (one round, no tools)
        max_iterations: the maximum number of rounds of a run
        system_prompt: the system prompt prepended to conversations
        tool_timeout: timeout of a single tool call in seconds (None
            for no timeout)
        parallel_tool_calls: execute the tool calls of a round
            concurrently
        max_history_size: number of messages kept when saving the
            conversation history
    """

    use_agent: bool = True
    max_iterations: int = Field(default=50, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    tool_timeout: float | None = Field(default=60.0, gt=0)
    parallel_tool_calls: bool = False
    max_history_size: int = Field(default=100, ge=1)

    model_config = ConfigDict(frozen=True, extra='forbid')


class ToolSettings(BaseModel):
    """
    Configuration of the tools offered to the model.

    Attributes:
        project_root: the folder the file tools are confined to. File
            tools are not offered if None
        docs_index_path: path of the documentation index (json). The
            documentation tools are not offered if the index is not
            available
        serper_api_key: the key of the serper.dev web search. If
            None, the SERPER_API_KEY environment variable is used. The
            web search is not offered if no key is available
        file_cache_ttl: refresh interval of the project file cache,
            in seconds
    """

    project_root: str | None = None
    docs_index_path: str | None = None
    serper_api_key: SecretStr | None = None
    file_cache_ttl: float = Field(default=30.0, ge=0.0)

    model_config = ConfigDict(frozen=True, extra='forbid')

    def get_serper_api_key(self) -> str | None:
        if self.serper_api_key is not None:
            key = self.serper_api_key.get_secret_value()
            if key:
                return key
        return os.environ.get("SERPER_API_KEY") or None


class Settings(BaseSettings):
    """
    A pydantic settings object containing the fields with the
    configuration information.

    Settings are saved and read from the configuration file in TOML
    format.

    Attributes:
        model: the language model used by the assistant
        agent: configuration of the agent loop
        tools: configuration of the tools
    """

    model: LanguageModelSettings = Field(
        default_factory=lambda: LanguageModelSettings(
            model="Gemini/gemini-2.5-flash",
        ),
        description="Language model used by the assistant",
    )
    agent: AgentSettings = Field(
        default_factory=AgentSettings,
        description="Agent loop configuration",
    )
    tools: ToolSettings = Field(
        default_factory=ToolSettings,
        description="Tool configuration",
    )

    model_config = SettingsConfigDict(
        toml_file=DEFAULT_CONFIG_FILE,
        env_prefix="G0_",
        env_nested_delimiter="__",
        frozen=True,
        validate_assignment=True,
        extra='forbid',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources."""
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls),
            env_settings,
        )

    def __str__(self) -> str:
        return serialize_settings(self)


def check_credentials(settings: LanguageModelSettings) -> None:
    """Checks that the credential of the configured provider is
    available in the environment.

    Raises:
        ConfigurationError: if the environment variable is not set
    """
    source = settings.get_model_source()
    env_var = CREDENTIAL_ENV_VARS.get(source)
    if env_var is None:  # Debug
        return
    if not os.environ.get(env_var):
        raise ConfigurationError(
            f"No credential for {source} models: "
            f"set the {env_var} environment variable."
        )


def _toml_table(values: dict[str, Any]) -> Table:
    table = tomlkit.table()
    for key, value in values.items():
        if isinstance(value, SecretStr):
            continue
        if isinstance(value, dict):
            table.add(key, _toml_table(value))  # type: ignore
        else:
            table.add(key, value)
    return table


def serialize_settings(settings: BaseSettings) -> str:
    """The settings in TOML format, one table per section. None values
    and secrets are not written.
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment("Configuration of the g0 assistant"))
    doc.add(
        tomlkit.comment(
            "API keys are read from the environment: "
            + ", ".join(CREDENTIAL_ENV_VARS.values())
            + ", SERPER_API_KEY"
        )
    )
    doc.add(tomlkit.nl())
    for section, values in settings.model_dump(exclude_none=True).items():
        if isinstance(values, dict):
            doc.add(section, _toml_table(values))  # type: ignore
        elif not isinstance(values, SecretStr):
            doc.add(section, values)
    return doc.as_string()


def export_settings(
    settings: BaseSettings, file_path: str | Path | None = None
) -> None:
    """Write the settings to a TOML file (config.toml by default).

    Raises:
        OSError: if the file cannot be written
    """
    file_path = Path(file_path or DEFAULT_CONFIG_FILE)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(serialize_settings(settings), encoding='utf-8')


def create_default_config_file(
    file_path: str | Path | None = None,
) -> None:
    """Write a configuration file with the default values, replacing
    any existing file. The values of an existing config.toml and of
    the environment are not used.

    Example:
        ```python
        # creates config.toml in the working directory
        create_default_config_file()
        ```
    """
    # model_construct does not read the settings sources
    export_settings(Settings.model_construct(), file_path)


def load_settings(file_path: str | Path | None = None) -> Settings:
    """Read the settings from a TOML file (config.toml by default).
    Environment variables override the values of the file.

    Raises:
        FileNotFoundError: if the file does not exist
        ConfigurationError: if the file is not valid TOML, or the
            values are not valid settings
    """
    file_path = Path(file_path or DEFAULT_CONFIG_FILE)
    if not file_path.exists():
        raise FileNotFoundError(f"Settings file not found: {file_path}")

    # the remaining configuration is inherited from Settings
    class FileSettings(Settings):
        model_config = SettingsConfigDict(toml_file=str(file_path))

    try:
        return FileSettings()
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid settings in {file_path}:\n"
            + format_validation_error(e)
        ) from e
    except ValueError as e:  # TOML syntax
        raise ConfigurationError(
            f"Could not read settings from {file_path}: {e}"
        ) from e


def format_validation_error(error: ValidationError) -> str:
    """One line per invalid field, as 'section.field: message'."""
    lines: list[str] = []
    for item in error.errors():
        location = ".".join(str(part) for part in item['loc'])
        lines.append(f"{location}: {item['msg']}" if location else item['msg'])
    return "\n".join(lines)
