""" LangChain interface to language models

This package connects the model specification written in config.toml
to the LangChain integrations of the vendors. The model objects are
created by a memoizing factory (`models`) and wrapped by the adapter
(`adapter`) behind the backend interface used by the agent loop.
"""
# pyright: reportUnusedImport=false
# flake8: noqa

from .adapter import LangChainChatModel
from .models import create_model_from_settings, create_model_from_spec
