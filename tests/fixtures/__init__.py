"""Shared test fixtures and fakes for the LauncherKit suite."""
