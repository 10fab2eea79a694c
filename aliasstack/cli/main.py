def main():
    from .aliasstack import aliasstack

    aliasstack()


if __name__ == "__main__":
    main()
