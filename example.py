import threading

from fx_twbank import FxTwBank, PipelineSettings
from fx_twbank.display import RateBoard
from fx_twbank.ingestion.strategy import order_strategies

print(FxTwBank.__version__)  # 0.1.0

# Default usage: ANTHROPIC_API_KEY (or API_KEY) is read from the environment
fx = FxTwBank()

outcome = fx.fetch()
if outcome.ok:
    for rate in outcome.rates:
        print(rate.currency, rate.currency_name, rate.cash_mid, rate.spot_mid)
else:
    print(outcome.error)
    print("Relays tried:", outcome.attempted)

# Raise instead of returning a failed outcome
rates = fx.rates()
print(rates[:2])

# Shorter relay budget and a custom relay order
fast = FxTwBank(
    PipelineSettings.from_env(
        timeout=4.0,
        strategies=order_strategies(["CodeTabs", "AllOrigins", "Jina AI Reader"]),
    )
)

# A board keeps the last good data when a refresh fails
board = RateBoard(fast.fetch)
board.refresh()
board.toggle_spot()
print(board.render())

# Cancel an in-flight cycle from another thread
cancel = threading.Event()
threading.Timer(2.0, cancel.set).start()
try:
    fast.rates(cancel_event=cancel)
except Exception as exc:  # FetchCancelledError or a pipeline error
    print(type(exc).__name__, exc)
