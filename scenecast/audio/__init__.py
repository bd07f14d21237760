"""Speech synthesis bindings, synthesis cache and timeline mixing."""
