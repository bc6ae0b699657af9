from setuptools import find_packages, setup

setup(
    name="crypto-news",
    version="0.1.0",
    description="Summarize Telegram crypto news posts with an LLM and serve them, with prices, from Redis",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "requests>=2.32.0",
        "beautifulsoup4>=4.12.0",
        "redis>=5.0.0",
        "telethon>=1.36.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.29.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.2.0",
            "fakeredis>=2.23.0",
            "httpx>=0.27.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "crypto-news=crypto_news.cli:main",
            "crypto-news-api=crypto_news.api:main",
            "crypto-news-session=crypto_news.session:main",
        ]
    },
)
