"""Core Application Layer: Orchestrates use cases and application logic.

Connects the domain layer with the infrastructure layer through interfaces.
Contains the chat gateway, the location pipeline, the map fallback chain
and the command handler.
"""
