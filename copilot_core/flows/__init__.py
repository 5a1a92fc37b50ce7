"""LangGraph 工作流（团队开通）。"""
