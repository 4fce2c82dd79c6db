"""pairsync Gateway -- 以 HTTP 暴露 InMemoryBackend 的开发网关"""
