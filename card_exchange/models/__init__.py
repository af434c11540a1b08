from card_exchange.models.user import User
from card_exchange.models.ledger import CoinTransaction, CoinReason
from card_exchange.models.card import Card, CardCollection
from card_exchange.models.exchange import ExchangeRequest, ExchangeRecord, ExchangeStatus
