"""AIRA — natural-language assistant backend for a field-service platform.

Architecture Overview
=====================

A technician or dispatcher types a request ("create a job for Jane Doe,
leaking faucet, tomorrow 9am").  Each request runs a **LangGraph** state
machine once:

1. **decide** — Claude on Amazon Bedrock sees the conversation, a
   tenant-scoped system prompt and the tool catalog, and either answers or
   requests one tool call.

2. **execute** — the function executor maps the tool name to a handler that
   talks to the customer / job / invoice services and returns a uniform
   ``FunctionResult`` envelope.  It never raises.

3. **summarize** — on success, the model rewrites the tool result as a
   confirmation.  Failures skip this step and are reported directly.

Routing: decide → (tool?) → execute → (success?) → summarize → END

Key Design Decisions
--------------------
- **LLM**: Claude via Bedrock Converse (``langchain-aws``).  The decision
  call retries once on a fallback model; the summary call does not.
- **Tenancy**: every request carries a UUID tenant id, validated before any
  model call and passed to every collaborator call.
- **Resilience**: the field-service REST client retries timeouts and 5xx
  responses with exponential backoff (3 attempts).
- **Catalog / handlers**: the executor checks at construction time that
  every catalog tool has a handler.
- **Dual Interface**: FastAPI server (production) + CLI chat loop.

Package Structure
-----------------
- ``aira/agent.py`` — LangGraph orchestrator, input validation, replies
- ``aira/config.py`` — configuration from env / SSM
- ``aira/prompts.py`` — system, summary and basic-chat prompts
- ``aira/server.py`` — FastAPI application and lifespan wiring
- ``aira/main.py`` — CLI chat interface
- ``aira/services/`` — Bedrock gateway, data backends, metrics, conversations
- ``aira/tools/`` — tool catalog and function executor
- ``aira/api/`` — FastAPI routes and Pydantic schemas
"""
