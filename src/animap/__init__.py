"""Incremental anime identifier mapping across MAL, AniDB, TVDB and TMDB."""

__version__ = "0.4.0"
