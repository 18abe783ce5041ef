"""
Configuration management for Agent Conductor.
"""

import json
import os
from typing import List, Optional
from pydantic import BaseModel, Field
from pathlib import Path

import yaml

from ..models.core import RoutingRule, MULTI_AGENT


def default_routing_rules() -> List[RoutingRule]:
    """Built-in rule set for the blog, SEO and services workers."""
    return [
        RoutingRule(
            category="blog",
            target="BlogAgent",
            keywords=[
                'blog', 'post', 'artículo', 'contenido', 'publicación',
                'escribir', 'redactar', 'crear blog', 'generar contenido',
                'optimizar contenido', 'mejorar artículo',
                'título', 'párrafo', 'introducción', 'conclusión',
                'tags', 'etiquetas', 'categorías blog'
            ],
            capabilities=['content_optimization', 'seo_analysis', 'tag_generation', 'content_creation'],
            description="Blog content creation and optimization",
            priority=2
        ),
        RoutingRule(
            category="seo",
            target="SEOAgent",
            keywords=[
                'seo', 'posicionamiento', 'keywords', 'meta', 'schema', 'sitemap', 'robot', 'canonical',
                'analizar seo', 'auditoria seo', 'palabras clave', 'ranking',
                'meta description', 'meta title', 'h1', 'h2',
                'optimizar seo', 'mejorar posicionamiento', 'google', 'buscadores'
            ],
            capabilities=['technical_seo', 'keyword_research', 'competitor_analysis', 'seo_audit'],
            description="Technical SEO and ranking analysis",
            priority=1
        ),
        RoutingRule(
            category="services",
            target="ServicesAgent",
            keywords=[
                'servicio', 'service', 'precio', 'paquete', 'oferta', 'producto',
                'analizar servicio', 'evaluar servicio', 'revisar servicio',
                'descripción de servicio', 'features del servicio',
                'pricing', 'cotización', 'propuesta', 'portafolio',
                'consultoría', 'desarrollo', 'diseño', 'marketing digital'
            ],
            capabilities=['service_management', 'pricing_strategy', 'content_generation', 'service_analysis'],
            description="Professional services analysis and management",
            priority=3
        ),
        RoutingRule(
            category="coordination",
            target=MULTI_AGENT,
            keywords=[
                'crear blog del servicio', 'blog sobre servicio', 'contenido para servicio',
                'publicación de servicio', 'artículo sobre servicio',
                'analizar servicio para crear blog', 'analizar servicio para crear',
                'crear blog-publicacion', 'blog-publicacion',
                'análisis completo', 'revisión general', 'evaluación total',
                'optimización integral', 'estrategia completa'
            ],
            capabilities=['multi_agent_coordination', 'complex_task_management'],
            description="Coordinates several workers for complex requests",
            priority=0
        ),
    ]


class OrchestrationConfig(BaseModel):
    """Configuration for dispatch and the registry health monitor."""
    task_timeout_seconds: float = Field(default=30.0, gt=0)
    health_check_interval_seconds: float = Field(default=60.0, gt=0)
    metrics_window_size: int = Field(default=100, ge=1)
    max_concurrent_tasks: int = Field(default=5, ge=1, le=100)


class RoutingConfig(BaseModel):
    """Configuration for command routing."""
    auto_routing: bool = Field(default=True)
    context_sharing: bool = Field(default=True)
    verbose_routing: bool = Field(default=False)
    enriched_context_limit: int = Field(default=10, ge=0)
    rules: List[RoutingRule] = Field(default_factory=default_routing_rules)


class CompletionConfig(BaseModel):
    """Configuration for the text-completion backend used by workers."""
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    model: str = Field(default="gpt-4o-mini")
    max_tokens: int = Field(default=1500, ge=1)
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)
    timeout_ms: int = Field(default=30000, ge=100)
    max_retries: int = Field(default=2, ge=0, le=10)


class SystemConfig(BaseModel):
    """Main system configuration."""
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    json_logging: bool = Field(default=False)
    session_ttl_hours: int = Field(default=24, ge=1)

    # Component configurations
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)


def _env_bool(name: str) -> bool:
    return os.getenv(name).lower() == "true"


def load_config_from_env() -> SystemConfig:
    """
    Load configuration from environment variables.

    Returns:
        SystemConfig: Configuration object with values from environment
    """
    config_data = {}

    # System settings
    if os.getenv("DEBUG"):
        config_data["debug"] = _env_bool("DEBUG")

    if os.getenv("LOG_LEVEL"):
        config_data["log_level"] = os.getenv("LOG_LEVEL")

    if os.getenv("JSON_LOGGING"):
        config_data["json_logging"] = _env_bool("JSON_LOGGING")

    if os.getenv("SESSION_TTL_HOURS"):
        config_data["session_ttl_hours"] = int(os.getenv("SESSION_TTL_HOURS"))

    # Orchestration settings
    orchestration_config = {}
    if os.getenv("TASK_TIMEOUT_SECONDS"):
        orchestration_config["task_timeout_seconds"] = float(os.getenv("TASK_TIMEOUT_SECONDS"))

    if os.getenv("HEALTH_CHECK_INTERVAL"):
        orchestration_config["health_check_interval_seconds"] = float(os.getenv("HEALTH_CHECK_INTERVAL"))

    if os.getenv("MAX_CONCURRENT_TASKS"):
        orchestration_config["max_concurrent_tasks"] = int(os.getenv("MAX_CONCURRENT_TASKS"))

    if orchestration_config:
        config_data["orchestration"] = orchestration_config

    # Routing settings
    routing_config = {}
    if os.getenv("AUTO_ROUTING"):
        routing_config["auto_routing"] = _env_bool("AUTO_ROUTING")

    if os.getenv("CONTEXT_SHARING"):
        routing_config["context_sharing"] = _env_bool("CONTEXT_SHARING")

    if os.getenv("VERBOSE_ROUTING"):
        routing_config["verbose_routing"] = _env_bool("VERBOSE_ROUTING")

    if routing_config:
        config_data["routing"] = routing_config

    # Completion backend settings
    completion_config = {}
    if os.getenv("COMPLETION_ENDPOINT"):
        completion_config["endpoint"] = os.getenv("COMPLETION_ENDPOINT")

    if os.getenv("COMPLETION_API_KEY"):
        completion_config["api_key"] = os.getenv("COMPLETION_API_KEY")

    if os.getenv("COMPLETION_MODEL"):
        completion_config["model"] = os.getenv("COMPLETION_MODEL")

    if completion_config:
        config_data["completion"] = completion_config

    return SystemConfig(**config_data)


def load_config_from_file(config_path: Optional[Path] = None) -> SystemConfig:
    """
    Load configuration from a JSON or YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        SystemConfig: Configuration object
    """
    if config_path is None:
        config_path = Path("config.json")

    config_path = Path(config_path)
    if not config_path.exists():
        return SystemConfig()

    with open(config_path, 'r', encoding='utf-8') as f:
        if config_path.suffix in (".yaml", ".yml"):
            config_data = yaml.safe_load(f) or {}
        else:
            config_data = json.load(f)

    return SystemConfig(**config_data)


def merge_configs(base: SystemConfig, override: SystemConfig) -> SystemConfig:
    """Overlay the explicitly set fields of ``override`` onto ``base``."""
    overrides = override.model_dump(exclude_unset=True)
    if not overrides:
        return base

    config_dict = base.model_dump()
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(config_dict.get(key), dict):
            config_dict[key].update(value)
        else:
            config_dict[key] = value
    return SystemConfig(**config_dict)


# Process-wide default; components receive their config explicitly
_config: Optional[SystemConfig] = None


def get_config() -> SystemConfig:
    """
    Get the process default configuration.

    Returns:
        SystemConfig: File configuration with environment overrides applied
    """
    global _config
    if _config is None:
        _config = merge_configs(load_config_from_file(), load_config_from_env())

    return _config


def set_config(config: Optional[SystemConfig]) -> None:
    """
    Set (or reset with ``None``) the process default configuration.

    Args:
        config: Configuration to set as default
    """
    global _config
    _config = config
