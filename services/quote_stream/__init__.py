"""
Quote Stream Client

Cliente de suscripción a quotes en tiempo real:
- Una conexión WebSocket por instancia de cliente
- Mensajes de control add / remove / subscribe
- Vista local optimista de los símbolos suscritos
- Log de eventos para la capa de presentación
"""
