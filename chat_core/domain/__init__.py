"""领域层模型与协议。

包含：
- models: Message / UsageCounters / ErrorKind / ErrorState 等基础模型。
- conversation: 会话聚合根、消息历史与配置。
- exceptions: 业务异常类型定义。
"""
