"""Ferry Core -- 消息日志、Blob 存储、增量同步与保留策略"""
