# =============================================================================
# compliance_core/data/supabase_client.py
# Supabase Client Configuration
# =============================================================================

from __future__ import annotations
import os
from typing import Optional, Tuple

import streamlit as st
from supabase import Client, create_client

from compliance_core.errors import ConfigurationError
from compliance_core.logging import get_logger

logger = get_logger(__name__)


def _read_credentials() -> Tuple[Optional[str], Optional[str]]:
    """
    Supabase URL and key from Streamlit secrets, else the environment.

    Expects secrets in .streamlit/secrets.toml:
        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"
    """
    try:
        if "supabase" in st.secrets:
            return st.secrets["supabase"].get("url"), st.secrets["supabase"].get("key")
    except Exception as e:
        # No secrets.toml at all (scripts, tests)
        logger.debug(f"Streamlit secrets not available: {e}")
    return os.getenv("SUPABASE_URL"), os.getenv("SUPABASE_KEY")


def get_supabase_client() -> Client:
    """
    Create a Supabase client from the configured credentials.

    Raises:
        ConfigurationError: credentials are missing
    """
    url, key = _read_credentials()
    if not url or not key:
        raise ConfigurationError(
            "Supabase credentials not found. Configure [supabase] in "
            ".streamlit/secrets.toml or set SUPABASE_URL and SUPABASE_KEY",
            config_key="supabase",
        )

    client = create_client(url, key)
    logger.info("Supabase client initialized")
    return client
