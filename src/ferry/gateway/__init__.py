"""Ferry Gateway -- HTTP JSON API（消息、轮询、上传、文件、回收站、健康检查）"""
