from setuptools import setup

DESCRIPTION = 'Lazy merging of chunked, named-axis data cubes ' \
              'from many sources for Python.'

with open('README.md') as f:
    LONG_DESCRIPTION = f.read()

dependencies = [
    'asciitree',
    'numpy>=1.21',
    'fasteners',
    'numcodecs>=0.10',
    'donfig>=0.7',
]

setup(
    name='cubeset',
    version='0.1.0',
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type='text/markdown',
    setup_requires=[
        'setuptools>=38.6.0',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    python_requires='>=3.8, <4',
    install_requires=dependencies,
    package_dir={'': '.'},
    packages=['cubeset', 'cubeset.tests'],
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python',
        'Topic :: Software Development :: Libraries :: Python Modules',
        'Operating System :: Unix',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
    license='MIT',
)
