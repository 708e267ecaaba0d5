"""ShopAssist command-line interface."""
