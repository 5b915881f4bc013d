"""
Relay components.

Organized by concern:
- core: constants, errors, audit context
- connection: connection handles and liveness
- sessions: session registry
- messages: wire commands and events
- events: outbound delivery bus
- routing: protocol state machine
- metrics: counters
- endpoints: WebSocket endpoint classes
"""
