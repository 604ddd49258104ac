from setuptools import setup, find_packages


setup(
    name="nus3bank",
    version="0.1",
    packages=find_packages(include=["nus3bank", "nus3bank.*"]),
    description="Read, edit and byte-faithfully rebuild NUS3BANK (BANKTOC) game audio banks.",
    python_requires=">=3.8",
    install_requires=[
        "PyYAML>=6.0",
    ],
    entry_points={
        "console_scripts": [
            "nus3bank=nus3bank.cli:main",
        ]
    },
)
