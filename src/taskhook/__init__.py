"""Webhook service that completes tasks from commit messages.

This package provides:
- Signed source-control webhook intake (ping and push events)
- Commit message classification via an LLM or keyword fallback
- Repository-scoped task resolution and the completion state machine
- Real-time task update broadcast over WebSockets
"""
