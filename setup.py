from setuptools import find_packages, setup

setup(
    name='crtpclient',
    version='0.3.0',
    description='Asyncio host-side client for the Crazyflie Real-Time Protocol (CRTP)',
    author='crtpclient contributors',
    author_email='',
    packages=find_packages(include=['crtpclient', 'crtpclient.*']),
    python_requires='>=3.11',
    install_requires=[
        'construct>=2.10',
        'msgspec>=0.18',
        'tenacity>=8.2',
        'transitions>=0.9',
        'marshmallow>=3.20',
    ],
    extras_require={
        'test': [
            'pytest>=7.4',
            'pytest-asyncio>=0.23',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Framework :: AsyncIO',
        'Operating System :: OS Independent',
    ],
)
