[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ethsupply"
version = "0.1.0"
description = "ETH supply analytics: unit types, time frames, USD price recording and a cached JSON API"
requires-python = ">=3.10"
keywords = ["ethereum", "eth", "supply", "gwei", "wei", "price"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
]
dependencies = [
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
ethsupply-serve = "ethsupply.serve:main"
ethsupply-record-eth-price = "ethsupply.usd_price.recording:record_eth_price"
ethsupply-resync-eth-prices = "ethsupply.usd_price.recording:resync_all"
ethsupply-heal-eth-prices = "ethsupply.usd_price.recording:heal_eth_prices"

[tool.hatch.build.targets.wheel]
packages = ["ethsupply"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
