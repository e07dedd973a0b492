from tokenmill_api.routes import health, markets, swap, tokens, vesting

ALL_ROUTERS = [
    health.router,
    markets.router,
    tokens.router,
    vesting.router,
    swap.router,
]
