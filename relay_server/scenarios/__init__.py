"""
Conversational scripts for the relay.

Each scenario defines:
- name: Scenario identifier
- prompt: System instruction for the upstream session
- greeting_log: Status line sent to the client once the upstream is open
- tool: The completion action (name, description, parameters, required)
"""
