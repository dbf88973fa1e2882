"""Core of the G Te Goyna invoice builder (no Streamlit imports here)."""

__version__ = "0.1.0"
