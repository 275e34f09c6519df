from swi_control.cli import main

if __name__ == "__main__":
    main()
