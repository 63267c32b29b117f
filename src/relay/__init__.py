"""GitHub pull-request review relay.

This package receives GitHub pull_request webhooks, sends the diff to a
text-generation backend, and writes the generated review back to GitHub:
- Webhook signature verification with per-repository secrets
- Retry with exponential backoff for the generation backend
- Review orchestration (diff, prompt, generate, parse, publish)
- OAuth session handling and webhook registration
"""
