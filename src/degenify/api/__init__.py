"""Degenify — FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request/response
models, and the share page renderer.

Modules
-------
main
    FastAPI application factory, route handlers, error mapping and the
    ``main()`` CLI entry point.
models
    Pydantic models for API request and response validation.
share_page
    Open Graph / Twitter card HTML pages for individual images.
"""
