"""领域层模型与协议。

包含：
- models: Message / BackendConfig / RoutingDecision / BackgroundTask 等统一模型。
- conversation: 有序的对话消息序列。
- chat: 宿主聊天平台的 Post / User / Channel 视图。
- collaborators: 外部协作方接口（历史、回帖、使用限制、开通）。
- exceptions: 业务异常类型定义。
"""
