#!/usr/bin/env python3
"""
Import the vocabulary catalog (words and optional questions) from JSON
"""

import json
import sqlite3
import sys
from pathlib import Path

from lexiduel.core.database.connection import DatabaseConnection
from lexiduel.core.database.repositories.word_repository import WordRepository
from lexiduel.utils import OPTION_LETTERS


def _question_for_insert(question: dict) -> dict:
    """Accept exported questions (option_a..d) as well as generated ones (options)"""
    if "options" in question:
        return {
            "question": question.get("question") or question.get("question_text"),
            "options": question["options"],
            "correct_index": question.get("correct_index", 0),
            "explanation": question.get("explanation") or question.get("explanation_text"),
        }

    options = [question.get(f"option_{letter.lower()}", "") for letter in OPTION_LETTERS]
    correct = str(question.get("correct_option", "A")).upper()
    return {
        "question": question.get("question_text"),
        "options": options,
        "correct_index": OPTION_LETTERS.index(correct) if correct in OPTION_LETTERS else 0,
        "explanation": question.get("explanation_text"),
    }


def import_catalog(json_path: str, db_path: str) -> bool:
    """Import catalog words and their questions into the database"""
    try:
        print(f"📖 Loading data from {json_path}")
        with open(json_path, encoding='utf-8') as f:
            data = json.load(f)

        words = data.get('words', [])
        print(f"  📝 Loaded {len(words)} words")

        print("🏗️  Initializing database schema...")
        db_connection = DatabaseConnection(db_path)
        db_connection.init_database()
        word_repo = WordRepository(db_connection)

        word_count = 0
        skipped_count = 0
        question_count = 0
        for position, word in enumerate(words):
            if not word.get('english') or not word.get('native'):
                print(f"  ⚠️  Skipping word without english/native text: {word}")
                skipped_count += 1
                continue

            if word_repo.get_word_by_english(word['english']):
                skipped_count += 1
                continue

            word.setdefault('order_index', position)
            word_id = word_repo.create_word(word)
            word_count += 1

            by_style: dict[str, list[dict]] = {}
            for question in word.get('questions', []):
                style = question.get('question_style') or question.get('style') or 'meaning'
                by_style.setdefault(style, []).append(_question_for_insert(question))
            for style, questions in by_style.items():
                question_count += len(word_repo.insert_generated_questions(word_id, style, questions))

        print(f"✅ Successfully imported data to {db_path}")
        print("📊 Import summary:")
        print(f"   • Words: {word_count}")
        print(f"   • Skipped: {skipped_count}")
        print(f"   • Questions: {question_count}")

        return True

    except (OSError, json.JSONDecodeError, KeyError, sqlite3.Error) as e:
        print(f"❌ Import failed: {e}")
        return False


def main():
    """Main import function"""
    if len(sys.argv) != 3:
        print("Usage: python import_words.py <input_json_path> <database_path>")
        print("Example: python import_words.py data/catalog.json data/lexiduel.db")
        sys.exit(1)

    json_path = sys.argv[1]
    db_path = sys.argv[2]

    if not Path(json_path).exists():
        print(f"❌ JSON file not found: {json_path}")
        sys.exit(1)

    print(f"🚀 Starting import from {json_path} to {db_path}")

    if import_catalog(json_path, db_path):
        print("🎉 Import completed successfully!")
        sys.exit(0)
    else:
        print("💥 Import failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
