from . import auth, user, chat, message, health, websocket

ROUTERS = [
    auth.router,
    user.router,
    chat.router,
    message.router,
    health.router,
    websocket.router,
]


def include_routers(app):
    for router in ROUTERS:
        app.include_router(router)
