"""Agent configuration, errors, the inference loop and the agent loop."""