from card_exchange.schemas.exchange import ExchangePrice

LIKES_PER_BONUS_COIN = 10
COINS_PER_EXCHANGE = 2

def popularity_bonus(like_count: int, exchange_count: int) -> int:
    return like_count // LIKES_PER_BONUS_COIN + exchange_count * COINS_PER_EXCHANGE

def calculate_price(base_price: int, like_count: int, exchange_count: int) -> ExchangePrice:
    """Coins required to acquire a card, from its current popularity counters.

    One bonus coin per full ten likes plus two per completed exchange.
    """
    if base_price < 0 or like_count < 0 or exchange_count < 0:
        raise ValueError("price inputs must be non-negative")
    bonus = popularity_bonus(like_count, exchange_count)
    return ExchangePrice(
        base_price=base_price,
        popularity_bonus=bonus,
        final_price=base_price + bonus,
    )
