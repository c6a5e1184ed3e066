"""领域层模型与协议。

包含：
- models: Conversation / Message / ThoughtStep / AgentResponse 模型。
- frames: 流式协议的帧类型。
- conversation: ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""
