"""Configuration package for Smart Buffer."""
from .settings import config, AppConfig

__all__ = ['config', 'AppConfig']
