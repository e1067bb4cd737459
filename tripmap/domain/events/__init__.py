"""Domain Events: Represent significant occurrences within the domain.

Used for decoupling components and triggering side effects.
"""
