""" G0: an agentic assistant for game development with the Godot Engine

The package is organized in

- `language_models`: messages, tools, backend adapters, and the agent
    loop that orchestrates model and tool calls
- `tools`: the documentation, web search and file tools
- `config`: the settings, read from config.toml
- `assistant`: assembly of the agent from the settings
- `conversation`: persistence of the conversation history
"""
