from typing import List, NamedTuple, Optional


class Region(NamedTuple):
    code: str
    name: str
    flag: str
    popular: bool = False


# Popular gaming regions first, then the rest alphabetically
REGIONS: List[Region] = [
    Region('Thailand', 'Thailand', '🇹🇭', True),
    Region('Asia', 'Asia', '🌏', True),
    Region('North America', 'North America', '🌎', True),
    Region('Europe', 'Europe', '🇪🇺', True),
    Region('Japan', 'Japan', '🇯🇵', True),
    Region('Australia', 'Australia', '🇦🇺', True),
    Region('Turkey', 'Turkey', '🇹🇷', True),
    Region('Argentina', 'Argentina', '🇦🇷'),
    Region('Austria', 'Austria', '🇦🇹'),
    Region('Belgium', 'Belgium', '🇧🇪'),
    Region('Brazil', 'Brazil', '🇧🇷'),
    Region('Canada', 'Canada', '🇨🇦'),
    Region('Chile', 'Chile', '🇨🇱'),
    Region('China', 'China', '🇨🇳'),
    Region('Colombia', 'Colombia', '🇨🇴'),
    Region('Czech Republic', 'Czech Republic', '🇨🇿'),
    Region('Denmark', 'Denmark', '🇩🇰'),
    Region('Finland', 'Finland', '🇫🇮'),
    Region('France', 'France', '🇫🇷'),
    Region('Germany', 'Germany', '🇩🇪'),
    Region('Greece', 'Greece', '🇬🇷'),
    Region('Hong Kong', 'Hong Kong', '🇭🇰'),
    Region('Hungary', 'Hungary', '🇭🇺'),
    Region('India', 'India', '🇮🇳'),
    Region('Indonesia', 'Indonesia', '🇮🇩'),
    Region('Ireland', 'Ireland', '🇮🇪'),
    Region('Israel', 'Israel', '🇮🇱'),
    Region('Italy', 'Italy', '🇮🇹'),
    Region('Malaysia', 'Malaysia', '🇲🇾'),
    Region('Mexico', 'Mexico', '🇲🇽'),
    Region('Netherlands', 'Netherlands', '🇳🇱'),
    Region('New Zealand', 'New Zealand', '🇳🇿'),
    Region('Norway', 'Norway', '🇳🇴'),
    Region('Philippines', 'Philippines', '🇵🇭'),
    Region('Poland', 'Poland', '🇵🇱'),
    Region('Portugal', 'Portugal', '🇵🇹'),
    Region('Romania', 'Romania', '🇷🇴'),
    Region('Russia', 'Russia', '🇷🇺'),
    Region('Saudi Arabia', 'Saudi Arabia', '🇸🇦'),
    Region('Singapore', 'Singapore', '🇸🇬'),
    Region('South Africa', 'South Africa', '🇿🇦'),
    Region('South Korea', 'South Korea', '🇰🇷'),
    Region('Spain', 'Spain', '🇪🇸'),
    Region('Sweden', 'Sweden', '🇸🇪'),
    Region('Switzerland', 'Switzerland', '🇨🇭'),
    Region('Taiwan', 'Taiwan', '🇹🇼'),
    Region('United Arab Emirates', 'United Arab Emirates', '🇦🇪'),
    Region('United Kingdom', 'United Kingdom', '🇬🇧'),
    Region('United States', 'United States', '🇺🇸'),
    Region('Vietnam', 'Vietnam', '🇻🇳'),
]

POPULAR_REGIONS = [region for region in REGIONS if region.popular]
OTHER_REGIONS = [region for region in REGIONS if not region.popular]


def get_region(code: str) -> Optional[Region]:
    for region in REGIONS:
        if region.code == code:
            return region
    return None


def region_display(code: str) -> str:
    region = get_region(code)
    return f"{region.flag} {region.name}" if region else code
