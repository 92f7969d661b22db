"""Concrete adapters for the interfaces in studyrag.interfaces."""
