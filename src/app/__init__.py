"""
App layer: API 서버 (FastAPI + SSE).

역할:
- 채팅/메시지 REST API, 알림 SSE 스트림
- 텍스트/이미지 producer 호출 (providers)
- 스트림/이미지 오케스트레이터 (services)
- 영속화는 core 에 위임
"""
