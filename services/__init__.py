"""
Campaign Stream Services

Core services for the campaign streaming demo:
- campaign: request/plan models and the incremental chunk generator
- streaming: SSE transport (server and client)
- preview: client-side plan assembly, typing animation and session control
"""
