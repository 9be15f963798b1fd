DEFAULT_SYSTEM_PROMPT = "You are a chatbot."


def get_system_prompt() -> str:
    return DEFAULT_SYSTEM_PROMPT
