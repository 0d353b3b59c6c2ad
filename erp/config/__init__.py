"""Configuration for the ERP service."""

from erp.config.settings import ErpConfig, get_erp_config, get_settings

__all__ = ["ErpConfig", "get_erp_config", "get_settings"]
