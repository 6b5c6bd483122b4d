"""ETH/USD price storage, fetching from Bybit, and recording."""