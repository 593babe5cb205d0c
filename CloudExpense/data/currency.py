"""Currencies an expense can be recorded in."""
import enum


class Currency(enum.Enum):
    """Supported currencies, valued by ISO code, with a display symbol and name."""
    USD = ('USD', '$', 'US Dollar')
    EUR = ('EUR', '€', 'Euro')
    GBP = ('GBP', '£', 'British Pound')
    JPY = ('JPY', '¥', 'Japanese Yen')
    INR = ('INR', '₹', 'Indian Rupee')
    BDT = ('BDT', '৳', 'Bangladeshi Taka')
    CNY = ('CNY', '¥', 'Chinese Yuan')
    AUD = ('AUD', 'A$', 'Australian Dollar')
    CAD = ('CAD', 'C$', 'Canadian Dollar')
    CHF = ('CHF', 'Fr', 'Swiss Franc')
    HKD = ('HKD', 'HK$', 'Hong Kong Dollar')
    SGD = ('SGD', 'S$', 'Singapore Dollar')
    SEK = ('SEK', 'kr', 'Swedish Krona')
    KRW = ('KRW', '₩', 'South Korean Won')
    NOK = ('NOK', 'kr', 'Norwegian Krone')
    NZD = ('NZD', 'NZ$', 'New Zealand Dollar')
    MXN = ('MXN', '$', 'Mexican Peso')
    ZAR = ('ZAR', 'R', 'South African Rand')
    BRL = ('BRL', 'R$', 'Brazilian Real')
    RUB = ('RUB', '₽', 'Russian Ruble')
    TRY = ('TRY', '₺', 'Turkish Lira')
    THB = ('THB', '฿', 'Thai Baht')
    IDR = ('IDR', 'Rp', 'Indonesian Rupiah')
    MYR = ('MYR', 'RM', 'Malaysian Ringgit')
    PHP = ('PHP', '₱', 'Philippine Peso')
    VND = ('VND', '₫', 'Vietnamese Dong')
    PKR = ('PKR', '₨', 'Pakistani Rupee')
    AED = ('AED', 'د.إ', 'UAE Dirham')

    def __init__(self, code: str, symbol: str, display_name: str) -> None:
        self.code = code
        self.symbol = symbol
        self.display_name = display_name

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        """Return the currency for an ISO code, falling back to EUR for unknown codes."""
        return next((c for c in cls if c.code == code), DEFAULT_CURRENCY)

    @classmethod
    def codes(cls) -> list[str]:
        return [c.code for c in cls]


DEFAULT_CURRENCY: Currency = Currency.EUR
