"""Currency conversion with markup for catalog prices."""


class PricingConverter:
    """Converts source-currency prices into the store currency.

    ``convert(price) = round(price * rate * (1 + markup / 100), 2)``
    """

    def __init__(
        self,
        exchange_rate: float = 1.0,
        markup_percent: float = 0.0,
        source_currency: str = "EUR",
        target_currency: str = "EUR",
    ):
        if exchange_rate <= 0:
            raise ValueError("Exchange rate must be positive")
        self.exchange_rate = exchange_rate
        self.markup_percent = markup_percent
        self.source_currency = source_currency.upper()
        self.target_currency = target_currency.upper()

    def convert(self, price: float) -> float:
        if price < 0:
            raise ValueError("Price cannot be negative")
        if price == 0:
            return 0.0

        converted = price * self.exchange_rate
        if self.markup_percent:
            converted *= 1 + self.markup_percent / 100
        return round(converted, 2)

    def convert_batch(self, prices: list[float]) -> list[float]:
        return [self.convert(price) for price in prices]
