"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (Azure OpenAI, Azure Maps,
OpenStreetMap, the console) by implementing the interfaces defined in the
domain layer. Also includes the resilience services shared by every
upstream call.
"""
