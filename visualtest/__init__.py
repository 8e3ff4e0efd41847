"""Visual regression test harness for frame-driven renderers."""
