from setuptools import setup, find_packages

setup(
    name="rakgame",
    version="0.1",
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'streamlit',
        'pandas',
        'firebase-admin',
        'google-api-core',
        'pyrebase4',
        'requests',
        'python-dotenv',
        'pydantic>=2',
        'reportlab'
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio'
        ]
    },
)
