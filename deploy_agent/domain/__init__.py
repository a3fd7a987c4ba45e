"""Domain model of the deployment agent: messages, options, status, errors, ports."""
