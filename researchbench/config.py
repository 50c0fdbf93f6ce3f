"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from researchbench.models.job import JobConfig

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "researchbench"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"


DEFAULT_CONFIG_TOML = """\
[mongodb]
enabled = true
uri = "mongodb://localhost:27017"
database = "researchbench"

[providers.anthropic]
api_key_env = "ANTHROPIC_API_KEY"
default_model = "claude-sonnet-4-20250514"

[providers.openrouter]
api_key_env = "OPENROUTER_API_KEY"
default_model = "anthropic/claude-sonnet-4"

[llm]
model = ""
temperature = 0.3
max_tokens = 2048
cost_per_1k_input = 0.003
cost_per_1k_output = 0.015

[search.brave]
api_key_env = "BRAVE_SEARCH_API_KEY"

[research]
default_provider = "anthropic"
default_search = "brave"
max_iterations = 5
max_parallel_searches = 10
follow_links = true
max_links_per_page = 3
information_gain_threshold = 0.2
min_sources = 3
max_sources = 10
results_per_query = 8
max_depth = 2
excluded_domains = ["pinterest.com", "quora.com"]

[queue]
max_concurrent_jobs = 5

[external]
timeout_seconds = 30
max_retries = 2
backoff_seconds = 1.0

[capture]
max_content_chars = 30000
max_links = 50
max_captures = 256
user_agent = "researchbench/0.1 (+https://github.com/researchbench)"

[synthesis]
batch_size = 3
"""


@dataclass
class MongoConfig:
    enabled: bool = True
    uri: str = "mongodb://localhost:27017"
    database: str = "researchbench"


@dataclass
class ProviderConfig:
    api_key_env: str = ""
    api_key: str = ""
    default_model: str = ""
    base_url: str = ""


@dataclass
class LLMSettings:
    model: str = ""
    temperature: float = 0.3
    max_tokens: int = 2048
    cost_per_1k_input: float = 0.003
    cost_per_1k_output: float = 0.015


@dataclass
class ResearchDefaults:
    default_provider: str = "anthropic"
    default_search: str = "brave"
    max_iterations: int = 5
    max_parallel_searches: int = 10
    follow_links: bool = True
    max_links_per_page: int = 3
    information_gain_threshold: float = 0.2
    min_sources: int = 3
    max_sources: int = 10
    results_per_query: int = 8
    max_depth: int = 2
    excluded_domains: list[str] = field(default_factory=lambda: ["pinterest.com", "quora.com"])

    def to_job_config(self, overrides: dict | None = None) -> JobConfig:
        """Build a job config from these defaults plus per-job overrides."""
        base = JobConfig(
            max_iterations=self.max_iterations,
            max_parallel_searches=self.max_parallel_searches,
            follow_links=self.follow_links,
            max_links_per_page=self.max_links_per_page,
            information_gain_threshold=self.information_gain_threshold,
            min_sources=self.min_sources,
            max_sources=self.max_sources,
            results_per_query=self.results_per_query,
            max_depth=self.max_depth,
            excluded_domains=tuple(self.excluded_domains),
        )
        return base.merged(overrides)


@dataclass
class QueueConfig:
    max_concurrent_jobs: int = 5


@dataclass
class ExternalConfig:
    timeout_seconds: float = 30.0
    max_retries: int = 2
    backoff_seconds: float = 1.0


@dataclass
class CaptureConfig:
    max_content_chars: int = 30000
    max_links: int = 50
    max_captures: int = 256
    user_agent: str = "researchbench/0.1 (+https://github.com/researchbench)"


@dataclass
class SynthesisConfig:
    batch_size: int = 3


@dataclass
class AppConfig:
    mongodb: MongoConfig = field(default_factory=MongoConfig)
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    llm: LLMSettings = field(default_factory=LLMSettings)
    research: ResearchDefaults = field(default_factory=ResearchDefaults)
    search: dict[str, ProviderConfig] = field(default_factory=dict)
    queue: QueueConfig = field(default_factory=QueueConfig)
    external: ExternalConfig = field(default_factory=ExternalConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    config_path: Path = DEFAULT_CONFIG_PATH


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    # MongoDB
    if uri := os.environ.get("MONGODB_URI"):
        config.mongodb.uri = uri
    if db := os.environ.get("RESEARCHBENCH_DB"):
        config.mongodb.database = db

    # Resolve API keys from env vars
    for prov in config.providers.values():
        if prov.api_key_env:
            prov.api_key = os.environ.get(prov.api_key_env, "")

    for search in config.search.values():
        if search.api_key_env:
            search.api_key = os.environ.get(search.api_key_env, "")


def _parse_provider(data: dict) -> ProviderConfig:
    return ProviderConfig(
        api_key_env=data.get("api_key_env", ""),
        default_model=data.get("default_model", ""),
        base_url=data.get("base_url", ""),
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    mongo_raw = raw.get("mongodb", {})
    providers_raw = raw.get("providers", {})
    llm_raw = raw.get("llm", {})
    research_raw = raw.get("research", {})
    search_raw = raw.get("search", {})
    queue_raw = raw.get("queue", {})
    external_raw = raw.get("external", {})
    capture_raw = raw.get("capture", {})
    synthesis_raw = raw.get("synthesis", {})

    defaults = ResearchDefaults()
    config = AppConfig(
        mongodb=MongoConfig(
            enabled=mongo_raw.get("enabled", True),
            uri=mongo_raw.get("uri", "mongodb://localhost:27017"),
            database=mongo_raw.get("database", "researchbench"),
        ),
        providers={name: _parse_provider(data) for name, data in providers_raw.items()},
        llm=LLMSettings(
            model=llm_raw.get("model", ""),
            temperature=llm_raw.get("temperature", 0.3),
            max_tokens=llm_raw.get("max_tokens", 2048),
            cost_per_1k_input=llm_raw.get("cost_per_1k_input", 0.003),
            cost_per_1k_output=llm_raw.get("cost_per_1k_output", 0.015),
        ),
        research=ResearchDefaults(
            default_provider=research_raw.get("default_provider", "anthropic"),
            default_search=research_raw.get("default_search", "brave"),
            max_iterations=research_raw.get("max_iterations", defaults.max_iterations),
            max_parallel_searches=research_raw.get(
                "max_parallel_searches", defaults.max_parallel_searches
            ),
            follow_links=research_raw.get("follow_links", defaults.follow_links),
            max_links_per_page=research_raw.get("max_links_per_page", defaults.max_links_per_page),
            information_gain_threshold=research_raw.get(
                "information_gain_threshold", defaults.information_gain_threshold
            ),
            min_sources=research_raw.get("min_sources", defaults.min_sources),
            max_sources=research_raw.get("max_sources", defaults.max_sources),
            results_per_query=research_raw.get("results_per_query", defaults.results_per_query),
            max_depth=research_raw.get("max_depth", defaults.max_depth),
            excluded_domains=research_raw.get("excluded_domains", defaults.excluded_domains),
        ),
        search={
            name: _parse_provider(data)
            for name, data in search_raw.items()
            if isinstance(data, dict)
        },
        queue=QueueConfig(
            max_concurrent_jobs=queue_raw.get("max_concurrent_jobs", 5),
        ),
        external=ExternalConfig(
            timeout_seconds=external_raw.get("timeout_seconds", 30.0),
            max_retries=external_raw.get("max_retries", 2),
            backoff_seconds=external_raw.get("backoff_seconds", 1.0),
        ),
        capture=CaptureConfig(
            max_content_chars=capture_raw.get("max_content_chars", 30000),
            max_links=capture_raw.get("max_links", 50),
            max_captures=capture_raw.get("max_captures", 256),
            user_agent=capture_raw.get("user_agent", CaptureConfig.user_agent),
        ),
        synthesis=SynthesisConfig(
            batch_size=synthesis_raw.get("batch_size", 3),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path
