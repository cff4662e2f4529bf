"""Transient switcher session: query engine, selection cursor and channel client."""
