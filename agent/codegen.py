"""
Template-based code generator behind the `generate_code` tool.

Each language has a handful of keyword-matched templates and a default. The
output depends only on the arguments.
"""
from typing import Callable, Dict, List, Optional, Sequence

from agent.errors import UnsupportedError

PYTHON_FASTAPI = '''# {description}
# FastAPI application with a sample route

from fastapi import FastAPI
import uvicorn

app = FastAPI(title="FastAPI Application", version="1.0.0")

@app.get("/")
def read_root():
    """Root endpoint"""
    return {"message": "Hello, FastAPI!"}

@app.get("/api/data")
def get_data():
    """Sample data endpoint"""
    return {"data": "This is sample data from FastAPI"}

@app.post("/api/webhook")
def webhook_handler(data: dict):
    """Sample webhook handler"""
    return {"status": "success", "received": data}

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
'''

PYTHON_SUM = '''# {description}
# This function sums two numbers and returns the result

def sum_two_numbers(a, b):
    """
    Sum two numbers and return the result.

    Args:
        a (float): First number
        b (float): Second number

    Returns:
        float: Sum of a and b
    """
    return a + b

if __name__ == "__main__":
    try:
        num1 = float(input("Enter first number: "))
        num2 = float(input("Enter second number: "))
        print(f"The sum of {num1} and {num2} is: {sum_two_numbers(num1, num2)}")
    except ValueError:
        print("Please enter valid numbers!")
'''

PYTHON_CALCULATOR = '''# {description}
# Simple calculator with basic operations

class Calculator:
    def add(self, a, b):
        return a + b

    def subtract(self, a, b):
        return a - b

    def multiply(self, a, b):
        return a * b

    def divide(self, a, b):
        if b == 0:
            raise ValueError("Cannot divide by zero!")
        return a / b

if __name__ == "__main__":
    calc = Calculator()
    print(f"5 + 3 = {calc.add(5, 3)}")
    print(f"10 - 4 = {calc.subtract(10, 4)}")
    print(f"6 * 7 = {calc.multiply(6, 7)}")
    print(f"15 / 3 = {calc.divide(15, 3)}")
'''

PYTHON_DEFAULT = '''# {description}
# Generated Python code
{requirements}
def main():
    """
    Main function - implement your logic here
    """
    print("Hello, World!")

if __name__ == "__main__":
    main()
'''

JAVASCRIPT_SUM = '''// {description}
// This function sums two numbers and returns the result

/**
 * Sum two numbers and return the result.
 * @param {number} a - First number
 * @param {number} b - Second number
 * @returns {number} Sum of a and b
 */
function sumTwoNumbers(a, b) {
    return a + b;
}

const num1 = 10;
const num2 = 25;
console.log(`The sum of ${num1} and ${num2} is: ${sumTwoNumbers(num1, num2)}`);
'''

JAVASCRIPT_DEFAULT = '''// {description}
// Generated JavaScript code
{requirements}
function main() {
    console.log('Hello, World!');
}

main();
'''

HTML_DEFAULT = '''<!-- {description} -->
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Generated HTML</title>
    <style>
        body {
            font-family: Arial, sans-serif;
            max-width: 800px;
            margin: 0 auto;
            padding: 20px;
        }
    </style>
</head>
<body>
    <h1>Generated HTML Page</h1>
    <p>This page was generated based on: {description}</p>
    {requirements}
</body>
</html>
'''

CSS_DEFAULT = '''/* {description} */
/* Generated CSS code */
{requirements}
* {
    margin: 0;
    padding: 0;
    box-sizing: border-box;
}

body {
    font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
    line-height: 1.6;
    color: #333;
    background-color: #f4f4f4;
}

.container {
    max-width: 1200px;
    margin: 0 auto;
    padding: 0 20px;
}

.main-content {
    background: white;
    padding: 2rem;
    border-radius: 8px;
    box-shadow: 0 2px 10px rgba(0,0,0,0.1);
}
'''

SQL_AGE_INCOME = '''-- {description}
-- Select age and income for users earning more than 10000

SELECT age, income
FROM users
WHERE income > 10000
ORDER BY income DESC;
'''

SQL_DEFAULT = '''-- {description}
-- Generated SQL code
{requirements}
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(100) NOT NULL,
    email VARCHAR(255) UNIQUE NOT NULL,
    age INTEGER,
    income DECIMAL(10,2),
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

SELECT * FROM users WHERE income > 10000;
SELECT COUNT(*) AS total_users FROM users;
SELECT * FROM users ORDER BY created_at DESC LIMIT 10;
'''

BASH_DEFAULT = '''#!/bin/bash
# {description}
# Generated Bash script
{requirements}
set -e

function main() {
    echo "Main function executed"
}

main

echo "Script completed successfully!"
'''


def _comment_block(prefix: str, requirements: Sequence[str], suffix: str = "") -> str:
    if not requirements:
        return ""
    lines = [f"{prefix} Requirements:{suffix}"]
    lines += [f"{prefix} - {req}{suffix}" for req in requirements]
    return "\n".join(lines) + "\n"


def _sum_of_two(desc: str) -> bool:
    return "sum" in desc and ("two numbers" in desc or "2 numbers" in desc)


def _python(desc: str, requirements: Sequence[str]) -> str:
    if "fastapi" in desc:
        return PYTHON_FASTAPI
    if _sum_of_two(desc):
        return PYTHON_SUM
    if "calculator" in desc:
        return PYTHON_CALCULATOR
    return PYTHON_DEFAULT.replace("{requirements}", _comment_block("#", requirements))


def _javascript(desc: str, requirements: Sequence[str]) -> str:
    if _sum_of_two(desc):
        return JAVASCRIPT_SUM
    return JAVASCRIPT_DEFAULT.replace("{requirements}", _comment_block("//", requirements))


def _html(desc: str, requirements: Sequence[str]) -> str:
    items = "".join(f"<li>{req}</li>" for req in requirements)
    return HTML_DEFAULT.replace("{requirements}", f"<ul>{items}</ul>" if items else "")


def _css(desc: str, requirements: Sequence[str]) -> str:
    return CSS_DEFAULT.replace("{requirements}", _comment_block("/*", requirements, " */"))


def _sql(desc: str, requirements: Sequence[str]) -> str:
    if all(word in desc for word in ("select", "age", "income", "10000")):
        return SQL_AGE_INCOME
    return SQL_DEFAULT.replace("{requirements}", _comment_block("--", requirements))


def _bash(desc: str, requirements: Sequence[str]) -> str:
    return BASH_DEFAULT.replace("{requirements}", _comment_block("#", requirements))


GENERATORS: Dict[str, Callable[[str, Sequence[str]], str]] = {
    "python": _python,
    "javascript": _javascript,
    "html": _html,
    "css": _css,
    "sql": _sql,
    "bash": _bash,
}

SUPPORTED_LANGUAGES = tuple(GENERATORS)


def generate(language: str, description: str, requirements: Optional[List[str]] = None) -> str:
    generator = GENERATORS.get(language.strip().lower())
    if generator is None:
        raise UnsupportedError(
            f"Unsupported language: {language}. Supported: {', '.join(SUPPORTED_LANGUAGES)}"
        )
    requirements = list(requirements or [])
    template = generator(description.lower(), requirements)
    return template.replace("{description}", description)
