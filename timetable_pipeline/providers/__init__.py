"""Cloud vision providers for raw text extraction.

Each module exposes ``PROVIDER_NAME``, ``CONFIDENCE``, ``is_configured()`` and
``extract_text(image, prompt)``. Providers raise on failure; the provider
chain turns any failure into a logged fall-through to the next provider.
"""
