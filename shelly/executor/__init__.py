"""Tool execution for the agent: tool interface, bash tool and executor."""