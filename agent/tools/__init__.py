from agent.tools.user_tools import build_user_tools, execute_invocation

__all__ = ["build_user_tools", "execute_invocation"]
